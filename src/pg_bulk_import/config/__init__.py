"""Configuration management for pg_bulk_import.

Usage:
    >>> from pg_bulk_import.config import ImportConfig, ConflictMode
    >>> config = ImportConfig(conflict_mode=ConflictMode.SKIP)

    Environment-backed defaults:
    >>> from pg_bulk_import.config import get_settings
    >>> config = get_settings().to_import_config()
"""

from pg_bulk_import.config.import_config import ConflictMode, ImportConfig, NullMode
from pg_bulk_import.config.settings import Settings, get_settings

__all__ = [
    "ConflictMode",
    "ImportConfig",
    "NullMode",
    "Settings",
    "get_settings",
]
