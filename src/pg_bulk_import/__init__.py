"""
pg_bulk_import: bulk INSERT, UPDATE and UPSERT into PostgreSQL via COPY.

Usage:
    >>> from pg_bulk_import import BulkImporter, ImportConfig, TableMapping
    >>> mapping = TableMapping.builder("orders").id("id", lambda o: o.id).build()
    >>> BulkImporter(conn).insert(mapping, orders)
"""

from pg_bulk_import.codecs import ValueCodecRegistry, default_registry
from pg_bulk_import.config import ConflictMode, ImportConfig, NullMode
from pg_bulk_import.exceptions import (
    BulkImportError,
    BulkLoadNotSupportedError,
    ConfigurationError,
    EncodingError,
    InvalidIdentifierError,
    LoadError,
    MappingError,
    ReconciliationError,
    StagingError,
)
from pg_bulk_import.io.loader import BulkImporter
from pg_bulk_import.mapping import (
    ColumnMapping,
    TableMapping,
    iter_dataframe_records,
    table_mapping_from_dataclass,
    table_mapping_from_dataframe,
)

__version__ = "0.1.0"

__all__ = [
    "BulkImportError",
    "BulkImporter",
    "BulkLoadNotSupportedError",
    "ColumnMapping",
    "ConfigurationError",
    "ConflictMode",
    "EncodingError",
    "ImportConfig",
    "InvalidIdentifierError",
    "LoadError",
    "MappingError",
    "NullMode",
    "ReconciliationError",
    "StagingError",
    "TableMapping",
    "ValueCodecRegistry",
    "default_registry",
    "iter_dataframe_records",
    "table_mapping_from_dataclass",
    "table_mapping_from_dataframe",
]
