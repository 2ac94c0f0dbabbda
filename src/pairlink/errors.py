"""Exceptions for pairlink."""

from enum import Enum


class PairlinkError(Exception):
    """Base exception for all pairlink errors."""

    pass


class ConfigError(PairlinkError):
    """Invalid configuration value."""

    pass


class StorageError(PairlinkError):
    """Artifact storage operation failed."""

    pass


class FailureKind(Enum):
    """Machine-readable failure kinds surfaced to callers."""

    INVALID_IDENTITY = "invalid_identity"
    INVALID_CODE = "invalid_code"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    NOT_VERIFIED = "not_verified"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_FAILURE = "upstream_failure"
    INTERNAL_ERROR = "internal_error"


class PairingError(PairlinkError):
    """Typed failure of a pairing lifecycle operation.

    Attributes:
        kind: Failure kind.
        message: Human-readable message.
    """

    kind: FailureKind = FailureKind.INTERNAL_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidIdentityError(PairingError):
    """Identity does not match the accepted format."""

    kind = FailureKind.INVALID_IDENTITY
    default_message = "Invalid phone number format"


class InvalidCodeError(PairingError):
    """Submitted pairing code does not match."""

    kind = FailureKind.INVALID_CODE
    default_message = "Invalid pairing code"


class InvalidRequestError(PairingError):
    """Request is missing required fields."""

    kind = FailureKind.INVALID_REQUEST
    default_message = "Invalid request"


class RateLimitedError(PairingError):
    """Too many issuance attempts for one identity."""

    kind = FailureKind.RATE_LIMITED
    default_message = "Too many pairing attempts. Please try again later."


class ConflictError(PairingError):
    """A live pairing session already exists for the identity."""

    kind = FailureKind.CONFLICT
    default_message = "A pairing session is already pending for this number"


class InvalidStateError(ConflictError):
    """Session is not in the state an operation requires."""

    default_message = "Pairing session is in an unexpected state"


class NotFoundError(PairingError):
    """No live pairing session for the identity."""

    kind = FailureKind.NOT_FOUND
    default_message = "No active pairing session for this number"


class NotVerifiedError(PairingError):
    """Credentials requested before the code was verified."""

    kind = FailureKind.NOT_VERIFIED
    default_message = "Pairing code not verified"


class UpstreamTimeoutError(PairingError):
    """Handshake provider did not answer in time."""

    kind = FailureKind.UPSTREAM_TIMEOUT
    default_message = "Pairing handshake timed out"


class UpstreamFailureError(PairingError):
    """Handshake provider failed."""

    kind = FailureKind.UPSTREAM_FAILURE
    default_message = "Pairing handshake failed"


class InternalError(PairingError):
    """Unexpected internal failure."""

    kind = FailureKind.INTERNAL_ERROR


class CodeCollisionError(PairlinkError):
    """Generated code is already held by another live session."""

    pass
