"""Pairing code generation and formatting."""

import re
import secrets
from enum import Enum

# Uppercase alphanumerics without 0/O and 1/I (32 symbols, 5 bits each)
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_SEPARATOR = "-"
DEFAULT_CODE_LENGTH = 9
DEFAULT_GROUP_SIZE = 3

_SEPARATORS = re.compile(r"[\s\-]")


def generate_code(
    length: int = DEFAULT_CODE_LENGTH,
    group_size: int = DEFAULT_GROUP_SIZE,
) -> str:
    """Generate a random grouped pairing code, e.g. ``K7P-Q2M-X9A``.

    Args:
        length: Number of code characters (excluding separators).
        group_size: Characters per group.

    Returns:
        Formatted pairing code.
    """
    raw = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return format_code(raw, group_size)


def format_code(raw: str, group_size: int = DEFAULT_GROUP_SIZE) -> str:
    """Split a raw code into groups joined by a dash.

    Codes already containing separators are regrouped.
    """
    compact = normalize_code(raw)
    groups = [compact[i : i + group_size] for i in range(0, len(compact), group_size)]
    return CODE_SEPARATOR.join(groups)


def normalize_code(code: str) -> str:
    """Canonical form used for comparisons (uppercase, no separators)."""
    return _SEPARATORS.sub("", code).upper()


def code_entropy_bits(length: int) -> float:
    """Entropy of a generated code of the given length."""
    return length * 5.0


class CodeMode(str, Enum):
    """Where the displayable pairing code comes from."""

    SELF = "self"  # generated locally, code-only flow
    PROTOCOL = "protocol"  # issued by the pairing handshake, full flow
