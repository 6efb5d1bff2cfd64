"""
SQL module for centralized SQL generation.

This module provides reusable utilities for building SQL statements with
identifier validation, quoting, schema qualification and PostgreSQL syntax.
"""

from .core.identifier import (
    is_valid_identifier,
    qualify_table,
    quote_and_join,
    quote_identifier,
    validate_identifier,
)
from .dialects.postgresql import PostgreSQLDialect
from .operations.reconcile import ReconcileBuilder

__all__ = [
    "is_valid_identifier",
    "quote_identifier",
    "qualify_table",
    "quote_and_join",
    "validate_identifier",
    "PostgreSQLDialect",
    "ReconcileBuilder",
]
