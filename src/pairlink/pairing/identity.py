"""Identity (phone number) validation."""

import re
from typing import Protocol

from pairlink.errors import InvalidIdentityError

# Any phone number written as 6-20 digits
GENERIC_IDENTITY_PATTERN = r"^[0-9]{6,20}$"

# Kenyan mobile numbers: 2547XXXXXXXX or 2541XXXXXXXX
KENYAN_IDENTITY_PATTERN = r"^254[17][0-9]{8}$"


class IdentityValidator(Protocol):
    """Protocol for identity validators."""

    def validate(self, identity: str) -> str:
        """Return the canonical identity or raise InvalidIdentityError."""
        ...


class PatternIdentityValidator:
    """Validates identities against a regular expression.

    Surrounding whitespace and a single leading '+' are stripped before
    matching; the stripped value is the canonical identity.
    """

    def __init__(
        self,
        pattern: str = GENERIC_IDENTITY_PATTERN,
        message: str | None = None,
    ):
        # ASCII: \d would otherwise accept digits from any script
        self._pattern = re.compile(pattern, re.ASCII)
        self._message = message

    @property
    def pattern(self) -> str:
        return self._pattern.pattern

    def validate(self, identity: str) -> str:
        """Validate and canonicalize an identity.

        Args:
            identity: Raw phone number as submitted.

        Returns:
            Canonical identity.

        Raises:
            InvalidIdentityError: If the identity is empty or malformed.
        """
        if not isinstance(identity, str) or not identity.strip():
            raise InvalidIdentityError("Phone number is required")

        canonical = identity.strip()
        if canonical.startswith("+"):
            canonical = canonical[1:]

        if not self._pattern.fullmatch(canonical):
            raise InvalidIdentityError(self._message)

        return canonical


def mask_identity(identity: str) -> str:
    """Shorten an identity for log lines."""
    if len(identity) <= 4:
        return "***"
    return f"***{identity[-4:]}"
