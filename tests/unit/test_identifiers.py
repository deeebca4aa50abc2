"""
Unit tests for SQL identifier validation.

Tests cover:
- Accepted names
- Empty, overlong and malformed names
- Reserved words (case-insensitive)
- Quoting
"""

import pytest

from dbaas.jsondrop_server.errors import InvalidIdentifierError, ValidationFailedError
from dbaas.jsondrop_server.store.identifiers import (
    MAX_IDENTIFIER_LENGTH,
    quote_identifier,
    safe_identifier,
    validate_identifier,
)


class TestValidateIdentifier:
    """Tests for validate_identifier."""

    @pytest.mark.parametrize(
        "name",
        ["users", "Users", "_private", "user_profiles", "table123", "a", "x" * 64],
    )
    def test_valid_names(self, name):
        """Well-formed names pass."""
        validate_identifier(name)

    def test_empty_rejected(self):
        """Empty name is rejected."""
        with pytest.raises(InvalidIdentifierError, match="cannot be empty"):
            validate_identifier("")

    def test_too_long_rejected(self):
        """Names over the maximum length are rejected."""
        with pytest.raises(InvalidIdentifierError, match="too long"):
            validate_identifier("x" * (MAX_IDENTIFIER_LENGTH + 1))

    @pytest.mark.parametrize(
        "name",
        [
            "123users",
            "user-profiles",
            "user profiles",
            "users;",
            "users`",
            "users'--",
            "ünïcode",
            "users\n",
        ],
    )
    def test_malformed_rejected(self, name):
        """Names with bad characters or a leading digit are rejected."""
        with pytest.raises(InvalidIdentifierError, match="must start with letter"):
            validate_identifier(name)

    @pytest.mark.parametrize("name", ["select", "SELECT", "Drop", "table", "offset"])
    def test_reserved_words_rejected(self, name):
        """Reserved words are rejected regardless of case."""
        with pytest.raises(InvalidIdentifierError, match="reserved keyword"):
            validate_identifier(name)

    def test_is_validation_failure(self):
        """Identifier errors are validation failures with a stable code."""
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_identifier("1bad")
        assert exc_info.value.code == "INVALID_IDENTIFIER"
        assert exc_info.value.identifier == "1bad"


class TestQuoteIdentifier:
    """Tests for quote_identifier and safe_identifier."""

    def test_quote_wraps_in_backticks(self):
        assert quote_identifier("users") == "`users`"

    def test_quote_doubles_embedded_backticks(self):
        assert quote_identifier("a`b") == "`a``b`"

    def test_safe_identifier_validates_then_quotes(self):
        assert safe_identifier("orders") == "`orders`"
        with pytest.raises(InvalidIdentifierError):
            safe_identifier("drop")
