"""Shared utilities for pg_bulk_import."""

from pg_bulk_import.utils.logging import bind_context, configure_logging, get_logger

__all__ = ["bind_context", "configure_logging", "get_logger"]
