"""Tests for identity validation."""

import pytest

from pairlink.errors import InvalidIdentityError
from pairlink.pairing.identity import (
    KENYAN_IDENTITY_PATTERN,
    PatternIdentityValidator,
    mask_identity,
)


class TestGenericValidator:
    """Tests for the default digits-only validator."""

    @pytest.fixture
    def validator(self):
        return PatternIdentityValidator()

    @pytest.mark.parametrize("identity", ["123456", "254712345678", "1" * 20])
    def test_accepts_digit_strings(self, validator, identity):
        assert validator.validate(identity) == identity

    @pytest.mark.parametrize("identity", ["abc", "", "   ", "12345", "1" * 21, "2547-1234"])
    def test_rejects_malformed(self, validator, identity):
        with pytest.raises(InvalidIdentityError):
            validator.validate(identity)

    def test_rejects_non_string(self, validator):
        with pytest.raises(InvalidIdentityError):
            validator.validate(None)

    def test_canonicalizes_plus_and_whitespace(self, validator):
        assert validator.validate(" +254712345678 ") == "254712345678"

    def test_empty_message(self, validator):
        with pytest.raises(InvalidIdentityError, match="required"):
            validator.validate("")

    @pytest.mark.parametrize(
        "identity",
        [
            "\u0662\u0665\u0664\u0667\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668",
            "\uff11\uff12\uff13\uff14\uff15\uff16",
        ],
    )
    def test_rejects_non_ascii_digits(self, validator, identity):
        with pytest.raises(InvalidIdentityError):
            validator.validate(identity)

    def test_custom_backslash_d_pattern_is_ascii_only(self):
        validator = PatternIdentityValidator(r"^\d{6}$")

        assert validator.validate("123456") == "123456"
        with pytest.raises(InvalidIdentityError):
            validator.validate("\u0661\u0662\u0663\u0664\u0665\u0666")


class TestKenyanValidator:
    """Tests for the stricter country pattern."""

    @pytest.fixture
    def validator(self):
        return PatternIdentityValidator(
            KENYAN_IDENTITY_PATTERN,
            message="Invalid Kenyan number format. Use 2547XXXXXXX",
        )

    @pytest.mark.parametrize("identity", ["254712345678", "254112345678"])
    def test_accepts_kenyan_mobiles(self, validator, identity):
        assert validator.validate(identity) == identity

    @pytest.mark.parametrize("identity", ["254212345678", "25471234567", "123456789012"])
    def test_rejects_other_numbers(self, validator, identity):
        with pytest.raises(InvalidIdentityError, match="Kenyan"):
            validator.validate(identity)


def test_mask_identity():
    assert mask_identity("254712345678") == "***5678"
    assert mask_identity("123") == "***"
