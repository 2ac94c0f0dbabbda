"""Pairing-session lifecycle for pairlink.

Provides:
- Identity validation and pairing code generation
- Per-identity issuance throttling
- The session store and its per-identity transactions
- The background reaper
- The lifecycle manager (issue, verify, redeem)
"""

from .codes import CodeMode, format_code, generate_code, normalize_code
from .identity import (
    GENERIC_IDENTITY_PATTERN,
    KENYAN_IDENTITY_PATTERN,
    IdentityValidator,
    PatternIdentityValidator,
)
from .manager import IssuedCode, PairingLifecycleManager
from .reaper import SessionReaper
from .results import PairingResult
from .session import PairingSession, PairingState
from .store import PairingSessionStore, StoreTransaction
from .throttle import IdentityThrottle

__all__ = [
    "CodeMode",
    "GENERIC_IDENTITY_PATTERN",
    "IdentityThrottle",
    "IdentityValidator",
    "IssuedCode",
    "KENYAN_IDENTITY_PATTERN",
    "PairingLifecycleManager",
    "PairingResult",
    "PairingSession",
    "PairingSessionStore",
    "PairingState",
    "PatternIdentityValidator",
    "SessionReaper",
    "StoreTransaction",
    "format_code",
    "generate_code",
    "normalize_code",
]
