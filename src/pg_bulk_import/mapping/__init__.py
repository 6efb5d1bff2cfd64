"""Entity-to-table mapping models and derive helpers."""

from pg_bulk_import.mapping.derive import (
    iter_dataframe_records,
    table_mapping_from_dataclass,
    table_mapping_from_dataframe,
)
from pg_bulk_import.mapping.models import ColumnMapping, TableMapping, TableMappingBuilder

__all__ = [
    "ColumnMapping",
    "TableMapping",
    "TableMappingBuilder",
    "iter_dataframe_records",
    "table_mapping_from_dataclass",
    "table_mapping_from_dataframe",
]
