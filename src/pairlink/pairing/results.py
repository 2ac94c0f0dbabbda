"""Structured outward results of pairing operations."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pairlink.errors import FailureKind, PairingError


@dataclass
class PairingResult:
    """Success flag, failure kind and message for one operation.

    Attributes:
        success: Whether the operation succeeded.
        kind: Failure kind (None on success).
        message: Human-readable message.
        data: Operation payload merged into the serialized result.
    """

    success: bool
    kind: Optional[FailureKind] = None
    message: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: Optional[str] = None, **data: Any) -> "PairingResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, error: PairingError) -> "PairingResult":
        return cls(success=False, kind=error.kind, message=error.message)

    @classmethod
    def internal_error(cls) -> "PairingResult":
        return cls(
            success=False,
            kind=FailureKind.INTERNAL_ERROR,
            message="Internal server error",
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for a JSON response."""
        result: dict[str, Any] = {"success": self.success}
        if self.kind is not None:
            result["error"] = self.kind.value
        if self.message is not None:
            result["message"] = self.message
        result.update(self.data)
        result["timestamp"] = datetime.now(timezone.utc).isoformat()
        return result
