"""Wall-clock source used for expiry math."""

import time
from typing import Protocol


class Clock(Protocol):
    """Protocol for time sources."""

    def now(self) -> float:
        """Current Unix time in seconds."""
        ...


class SystemClock:
    """Clock backed by time.time()."""

    def now(self) -> float:
        return time.time()
