"""SQL dialect implementations."""

from .postgresql import PostgreSQLDialect

__all__ = ["PostgreSQLDialect"]
