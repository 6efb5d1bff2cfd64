"""
Exception hierarchy for pg_bulk_import.

Every error raised by this package derives from BulkImportError so callers
can catch a single type. Errors raised while talking to PostgreSQL are chained
(``raise ... from exc``) to the original driver exception and carry the
affected relation name.
"""

from typing import Any, Dict, Optional


class BulkImportError(Exception):
    """Base exception for all bulk import operations."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.table = table
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(BulkImportError):
    """Raised when an ImportConfig combination is invalid."""

    @classmethod
    def missing_conflict_columns(cls) -> "ConfigurationError":
        return cls(
            "Conflict columns must be specified when using REPLACE_ALL or "
            "REPLACE_SPECIFIED conflict mode"
        )

    @classmethod
    def missing_update_columns(cls) -> "ConfigurationError":
        return cls(
            "Update columns must be specified when using REPLACE_SPECIFIED "
            "conflict mode"
        )


class MappingError(BulkImportError):
    """Raised when a TableMapping definition is invalid."""

    @classmethod
    def duplicate_column(cls, column: str) -> "MappingError":
        return cls(f"Duplicate column mapping: '{column}'", details={"column": column})


class InvalidIdentifierError(BulkImportError, ValueError):
    """Raised when a schema, table or column name fails identifier validation."""


class EncodingError(BulkImportError):
    """Raised when a value cannot be extracted or encoded mid-stream."""


class LoadError(BulkImportError):
    """Raised when the COPY protocol call fails."""

    @classmethod
    def copy_failed(cls, table: str, cause: BaseException) -> "LoadError":
        return cls(
            f"COPY command failed for table '{table}': {cause}",
            table=table,
        )


class BulkLoadNotSupportedError(LoadError):
    """Raised when the connection cannot speak the COPY protocol."""

    @classmethod
    def for_connection(cls, connection: Any, table: str) -> "BulkLoadNotSupportedError":
        return cls(
            "The provided connection does not support the PostgreSQL COPY protocol "
            f"({type(connection).__module__}.{type(connection).__name__}). "
            "A psycopg2 or psycopg connection is required.",
            table=table,
        )


class ReconciliationError(BulkImportError):
    """Raised when the UPDATE or UPSERT statement from staging fails."""


class StagingError(BulkImportError):
    """Raised when a staging table cannot be created."""
