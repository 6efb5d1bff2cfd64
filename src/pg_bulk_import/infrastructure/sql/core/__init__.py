"""Core SQL utilities package."""

from .identifier import (
    MAX_IDENTIFIER_LENGTH,
    is_valid_identifier,
    qualify_table,
    quote_and_join,
    quote_identifier,
    validate_identifier,
)

__all__ = [
    "MAX_IDENTIFIER_LENGTH",
    "is_valid_identifier",
    "qualify_table",
    "quote_and_join",
    "quote_identifier",
    "validate_identifier",
]
