"""Pairing session state machine.

Represents one in-flight or completed pairing attempt with forward-only
state transitions and TTL-based expiry.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pairlink.errors import InvalidStateError
from pairlink.handshake.artifacts import ArtifactRef


class PairingState(Enum):
    """Pairing session states."""

    PENDING = "pending"
    VERIFIED = "verified"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


TERMINAL_STATES = frozenset({PairingState.REDEEMED, PairingState.EXPIRED})

VALID_TRANSITIONS = {
    PairingState.PENDING: {PairingState.VERIFIED, PairingState.EXPIRED},
    PairingState.VERIFIED: {PairingState.REDEEMED, PairingState.EXPIRED},
    PairingState.REDEEMED: set(),
    PairingState.EXPIRED: set(),
}


@dataclass
class PairingSession:
    """A pairing attempt bound to one identity.

    Attributes:
        identity: Canonical phone number.
        code: Displayable pairing code.
        created_at: Unix timestamp when the session was created.
        expires_at: Unix timestamp after which the session is expired.
        state: Current pairing state.
        artifact_ref: Scoped artifact owned by this session, if allocated.
    """

    identity: str
    code: str
    created_at: float
    expires_at: float
    state: PairingState = PairingState.PENDING
    artifact_ref: Optional[ArtifactRef] = None

    @classmethod
    def create(
        cls, identity: str, code: str, ttl: float, now: float
    ) -> "PairingSession":
        """Create a pending session expiring ``ttl`` seconds from ``now``."""
        return cls(
            identity=identity,
            code=code,
            created_at=now,
            expires_at=now + ttl,
        )

    def is_expired(self, now: float) -> bool:
        """Check whether the session is logically expired at ``now``.

        Stored state is ignored once expires_at has passed.
        """
        return self.state == PairingState.EXPIRED or now > self.expires_at

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def is_live(self, now: float) -> bool:
        """Non-terminal and not expired."""
        return not self.is_terminal() and not self.is_expired(now)

    def expires_in(self, now: float) -> int:
        """Whole seconds left before expiry (never negative)."""
        return max(0, int(round(self.expires_at - now)))

    def transition_to(self, new_state: PairingState) -> None:
        """Transition to a new state with validation.

        Args:
            new_state: Target state.

        Raises:
            InvalidStateError: If transition is not valid from current state.
        """
        if new_state not in VALID_TRANSITIONS.get(self.state, set()):
            raise InvalidStateError(
                f"Invalid transition: {self.state.value} -> {new_state.value}"
            )

        self.state = new_state
