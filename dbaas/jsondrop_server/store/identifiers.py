"""
SQL identifier validation for dynamically named collections.

Collection names become table names in the tenant database, so they are
the one place where caller input is interpolated into SQL text. Every
such name must go through safe_identifier (or validate_identifier then
quote_identifier) first.

Invariants:
    - Accepted names match [A-Za-z_][A-Za-z0-9_]* and are at most 64 chars
    - Reserved words are rejected regardless of case
    - quote_identifier output is always a single backtick-delimited token
"""

from __future__ import annotations

import re

from ..errors import InvalidIdentifierError

MAX_IDENTIFIER_LENGTH = 64

_IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

RESERVED_WORDS = frozenset(
    {
        "SELECT",
        "INSERT",
        "UPDATE",
        "DELETE",
        "DROP",
        "CREATE",
        "ALTER",
        "TABLE",
        "INDEX",
        "VIEW",
        "DATABASE",
        "SCHEMA",
        "WHERE",
        "FROM",
        "JOIN",
        "UNION",
        "ORDER",
        "GROUP",
        "HAVING",
        "LIMIT",
        "OFFSET",
    }
)


def validate_identifier(name: str) -> None:
    """Check that a caller-supplied name is a safe SQL identifier.

    Args:
        name: Collection or schema name

    Raises:
        InvalidIdentifierError: If the name is empty, too long, contains
            characters outside [A-Za-z0-9_], starts with a digit or is a
            reserved word
    """
    if not name:
        raise InvalidIdentifierError("identifier cannot be empty", name)

    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(
            f"identifier too long (max {MAX_IDENTIFIER_LENGTH} characters)", name
        )

    if not _IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidIdentifierError(
            "identifier must start with letter or underscore and contain only "
            "alphanumeric characters and underscores",
            name,
        )

    if name.upper() in RESERVED_WORDS:
        raise InvalidIdentifierError(
            f"identifier cannot be a SQL reserved keyword: {name}", name
        )


def quote_identifier(name: str) -> str:
    """Wrap an identifier in backticks, doubling any embedded backticks."""
    return "`" + name.replace("`", "``") + "`"


def safe_identifier(name: str) -> str:
    """Validate and quote an identifier.

    This is the function to use for every user-provided table name.

    Returns:
        The quoted identifier, ready for interpolation
    """
    validate_identifier(name)
    return quote_identifier(name)
