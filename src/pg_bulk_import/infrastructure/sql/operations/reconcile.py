"""
Statement builders for reconciling a staging table into its target.

Provides UPDATE ... FROM and INSERT ... SELECT (with optional ON CONFLICT)
construction on top of a SQL dialect. Column defaults are resolved by the
caller; this module only validates that the lists it receives are usable.
"""

from typing import Literal, Optional, Protocol, Sequence

from pg_bulk_import.exceptions import ConfigurationError

ConflictAction = Literal["error", "do_nothing", "do_update"]


class Dialect(Protocol):
    """Protocol for SQL dialects."""

    name: str

    def build_update_from(
        self, table: str, source: str, set_columns: Sequence[str], match_columns: Sequence[str], schema: Optional[str] = None
    ) -> str: ...
    def build_insert_select(
        self, table: str, source: str, columns: Sequence[str], schema: Optional[str] = None
    ) -> str: ...
    def build_on_conflict_do_nothing(self, conflict_columns: Sequence[str]) -> str: ...
    def build_on_conflict_do_update(
        self, conflict_columns: Sequence[str], update_columns: Sequence[str]
    ) -> str: ...


class ReconcileBuilder:
    """
    High-level builder for staging-to-target statements.

    Example:
        >>> from pg_bulk_import.infrastructure.sql import PostgreSQLDialect
        >>> builder = ReconcileBuilder(PostgreSQLDialect())
        >>> print(builder.upsert("public", "orders", "stg_1", ["id", "qty"], ["id"], "do_nothing"))
        INSERT INTO "public"."orders" ("id", "qty") SELECT "id", "qty" FROM "stg_1" ON CONFLICT ("id") DO NOTHING
    """

    def __init__(self, dialect: Dialect):
        """
        Initialize the ReconcileBuilder.

        Args:
            dialect: SQL dialect to use for statement generation
        """
        self.dialect = dialect

    def update(
        self,
        schema: Optional[str],
        table: str,
        staging: str,
        set_columns: Sequence[str],
        match_columns: Sequence[str],
    ) -> str:
        """
        Build an UPDATE joining the target to the staging table.

        Raises:
            ConfigurationError: If there is nothing to set or nothing to match on
        """
        if not match_columns:
            raise ConfigurationError(
                "No match columns specified for UPDATE and the mapping has no id columns",
                table=table,
            )
        if not set_columns:
            raise ConfigurationError(
                "No columns to update: every mapped column is a match column",
                table=table,
            )
        return self.dialect.build_update_from(
            table, staging, set_columns, match_columns, schema
        )

    def upsert(
        self,
        schema: Optional[str],
        table: str,
        staging: str,
        columns: Sequence[str],
        conflict_columns: Sequence[str],
        action: ConflictAction = "error",
        update_columns: Optional[Sequence[str]] = None,
    ) -> str:
        """
        Build an INSERT ... SELECT from staging with a conflict clause.

        Args:
            schema: Schema name (optional)
            table: Target table name
            staging: Staging table name
            columns: Columns copied from staging
            conflict_columns: Columns for conflict detection
            action: "error" (no clause), "do_nothing" or "do_update"
            update_columns: Columns refreshed on conflict (required for "do_update")

        Returns:
            INSERT SQL statement
        """
        statement = self.dialect.build_insert_select(table, staging, columns, schema)
        if action == "error":
            return statement

        if not conflict_columns:
            raise ConfigurationError(
                "No conflict columns specified for upsert and the mapping has no id columns",
                table=table,
            )
        if action == "do_nothing":
            return statement + self.dialect.build_on_conflict_do_nothing(
                conflict_columns
            )
        if not update_columns:
            raise ConfigurationError(
                "No columns to refresh on conflict", table=table
            )
        return statement + self.dialect.build_on_conflict_do_update(
            conflict_columns, update_columns
        )
