"""Boundary to the external device-pairing protocol.

Provides:
- HandshakeProvider capability protocol
- Scoped artifact directories and their release
- A local provider for the code-only flow
- Provider loading by import path
"""

import importlib

from pairlink.errors import ConfigError

from .artifacts import ArtifactRef, ArtifactReleaser, ArtifactStore
from .local import LocalHandshakeProvider
from .protocol import HandshakeProvider, HandshakeResult


def load_provider(import_path: str) -> HandshakeProvider:
    """Instantiate a provider from a ``module:attribute`` import path.

    Raises:
        ConfigError: If the path cannot be resolved.
    """
    module_name, _, attr = import_path.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Handshake provider must be 'module:attribute', got {import_path!r}")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load handshake provider {import_path!r}: {e}") from e
    return factory()


__all__ = [
    "ArtifactRef",
    "ArtifactReleaser",
    "ArtifactStore",
    "HandshakeProvider",
    "HandshakeResult",
    "LocalHandshakeProvider",
    "load_provider",
]
