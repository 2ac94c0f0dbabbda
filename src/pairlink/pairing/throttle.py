"""Per-identity issuance throttle."""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from pairlink.errors import RateLimitedError
from pairlink.pairing.identity import mask_identity

logger = logging.getLogger(__name__)


class IdentityThrottle:
    """Sliding window limit on issuance attempts per identity.

    Records are pruned lazily on each check and never expire on their own.
    """

    def __init__(self, max_attempts: int = 3, window_seconds: float = 3600.0):
        """Initialize throttle.

        Args:
            max_attempts: Maximum attempts allowed in window.
            window_seconds: Window size in seconds.
        """
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._attempts: Dict[str, List[float]] = defaultdict(list)

    def check_and_record(self, identity: str, now: float) -> None:
        """Record an attempt for ``identity`` unless it is over the limit.

        Args:
            identity: Canonical identity.
            now: Attempt timestamp.

        Raises:
            RateLimitedError: If the identity used up its attempts in the
                trailing window. The rejected attempt is not recorded.
        """
        cutoff = now - self.window_seconds

        recent = [t for t in self._attempts[identity] if t > cutoff]
        self._attempts[identity] = recent

        if len(recent) >= self.max_attempts:
            logger.info(f"Rate limited pairing attempts for {mask_identity(identity)}")
            raise RateLimitedError()

        recent.append(now)

    def attempts(self, identity: str, now: float) -> int:
        """Number of attempts counted for ``identity`` at ``now``."""
        cutoff = now - self.window_seconds
        return sum(1 for t in self._attempts.get(identity, ()) if t > cutoff)

    def reset(self, identity: Optional[str] = None) -> None:
        """Forget recorded attempts for one identity, or all of them."""
        if identity is None:
            self._attempts.clear()
        else:
            self._attempts.pop(identity, None)
