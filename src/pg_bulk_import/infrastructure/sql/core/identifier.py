"""
SQL identifier handling utilities.

Table and column names cannot be bound as statement parameters, so every
identifier that reaches SQL text is validated against a strict pattern first
and only then wrapped in double quotes.
"""

import re
from typing import Iterable, Optional

from pg_bulk_import.exceptions import InvalidIdentifierError

MAX_IDENTIFIER_LENGTH = 63  # PostgreSQL NAMEDATALEN - 1

_VALID_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: str) -> str:
    """
    Validate a SQL identifier without quoting it.

    Args:
        name: Schema, table, column or staging table name

    Returns:
        The identifier unchanged

    Raises:
        InvalidIdentifierError: If the identifier is empty, longer than 63
            characters, or contains anything but letters, digits and
            underscores (or starts with a digit)

    Examples:
        >>> validate_identifier("order_items")
        'order_items'
    """
    if not name or not isinstance(name, str):
        raise InvalidIdentifierError("SQL identifier cannot be null or empty")

    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(
            f"SQL identifier exceeds maximum length of {MAX_IDENTIFIER_LENGTH} "
            f"characters: {name}",
            details={"identifier": name, "length": len(name)},
        )

    if not _VALID_IDENTIFIER.fullmatch(name):
        raise InvalidIdentifierError(
            f"Invalid SQL identifier: '{name}'. Identifiers must start with a "
            "letter or underscore, and contain only letters, digits, or underscores.",
            details={"identifier": name},
        )
    return name


def is_valid_identifier(name: Optional[str]) -> bool:
    """Return True when ``name`` would pass validate_identifier."""
    if not name or not isinstance(name, str):
        return False
    if len(name) > MAX_IDENTIFIER_LENGTH:
        return False
    return bool(_VALID_IDENTIFIER.fullmatch(name))


def quote_identifier(name: str) -> str:
    """
    Validate and quote a SQL identifier (table or column name).

    Examples:
        >>> quote_identifier("company_id")
        '"company_id"'
    """
    return f'"{validate_identifier(name)}"'


def qualify_table(table: str, schema: Optional[str] = None) -> str:
    """
    Create a fully qualified, quoted table name with optional schema prefix.

    Examples:
        >>> qualify_table("users")
        '"users"'
        >>> qualify_table("users", schema="public")
        '"public"."users"'
    """
    quoted_table = quote_identifier(table)
    if schema:
        return f"{quote_identifier(schema)}.{quoted_table}"
    return quoted_table


def quote_and_join(columns: Iterable[str], separator: str = ", ") -> str:
    """
    Quote a list of column names and join them.

    Examples:
        >>> quote_and_join(["id", "name"])
        '"id", "name"'
    """
    return separator.join(quote_identifier(col) for col in columns)
