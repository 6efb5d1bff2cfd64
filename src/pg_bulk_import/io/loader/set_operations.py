"""
Set-based UPDATE and UPSERT from a populated staging table.

Column defaults come from the mapping (identifier / non-identifier columns)
unless the ImportConfig names columns explicitly.
"""

from typing import Any, List, Optional

from pg_bulk_import.config.import_config import ConflictMode, ImportConfig
from pg_bulk_import.exceptions import ConfigurationError, ReconciliationError
from pg_bulk_import.infrastructure.sql.dialects.postgresql import PostgreSQLDialect
from pg_bulk_import.infrastructure.sql.operations.reconcile import (
    ConflictAction,
    ReconcileBuilder,
)
from pg_bulk_import.io.loader.copy_executor import resolve_target_schema
from pg_bulk_import.mapping.models import TableMapping
from pg_bulk_import.utils.logging import get_logger

logger = get_logger(__name__)

_CONFLICT_ACTIONS = {
    ConflictMode.FAIL: "error",
    ConflictMode.SKIP: "do_nothing",
    ConflictMode.REPLACE_ALL: "do_update",
    ConflictMode.REPLACE_SPECIFIED: "do_update",
}


class SetOperationExecutor:
    """Reconcile a staging table into its target with a single statement."""

    def __init__(
        self,
        connection: Any,
        mapping: TableMapping,
        config: Optional[ImportConfig] = None,
        dialect: Optional[PostgreSQLDialect] = None,
    ):
        self.connection = connection
        self.mapping = mapping
        self.config = config or ImportConfig.defaults()
        self.builder = ReconcileBuilder(dialect or PostgreSQLDialect())

    @property
    def schema(self) -> Optional[str]:
        return resolve_target_schema(self.mapping, self.config)

    def match_columns(self) -> List[str]:
        if self.config.has_explicit_match_columns:
            return list(self.config.match_columns)
        if not self.mapping.has_id_columns:
            raise ConfigurationError(
                "No match columns specified and no id columns found. "
                "Configure match_columns or add id columns to the mapping.",
                table=self.mapping.table_name,
            )
        return self.mapping.id_column_names

    def conflict_columns(self) -> List[str]:
        if self.config.has_conflict_columns:
            return list(self.config.conflict_columns)
        if not self.mapping.has_id_columns:
            raise ConfigurationError(
                "No conflict columns specified and no id columns found. "
                "Configure conflict_columns or add id columns to the mapping.",
                table=self.mapping.table_name,
            )
        return self.mapping.id_column_names

    def update_columns(self) -> List[str]:
        if self.config.has_update_columns:
            return list(self.config.update_columns)
        return self.mapping.non_id_column_names

    def refresh_columns(self) -> List[str]:
        """Columns refreshed by ON CONFLICT DO UPDATE."""
        if self.config.conflict_mode == ConflictMode.REPLACE_SPECIFIED:
            return list(self.config.update_columns)
        return self.mapping.non_id_column_names

    def check_update(self) -> None:
        """Resolve UPDATE columns up front; raises ConfigurationError if impossible."""
        self.match_columns()
        if not self.update_columns():
            raise ConfigurationError(
                "No columns to update: the mapping has no non-id columns",
                table=self.mapping.table_name,
            )

    def check_upsert(self) -> None:
        """Resolve UPSERT columns up front; raises ConfigurationError if impossible."""
        mode = self.config.conflict_mode
        if mode == ConflictMode.FAIL:
            return
        self.conflict_columns()
        if mode.refreshes and not self.refresh_columns():
            raise ConfigurationError(
                "No columns to refresh on conflict: the mapping has no non-id columns",
                table=self.mapping.table_name,
            )

    def build_update_sql(self, staging_table: str) -> str:
        return self.builder.update(
            self.schema,
            self.mapping.table_name,
            staging_table,
            self.update_columns(),
            self.match_columns(),
        )

    def build_upsert_sql(self, staging_table: str) -> str:
        mode = self.config.conflict_mode
        action: ConflictAction = _CONFLICT_ACTIONS[mode]  # type: ignore[assignment]
        if action == "error":
            return self.builder.upsert(
                self.schema, self.mapping.table_name, staging_table, self.mapping.column_names, ()
            )
        return self.builder.upsert(
            self.schema,
            self.mapping.table_name,
            staging_table,
            self.mapping.column_names,
            self.conflict_columns(),
            action,
            self.refresh_columns() if mode.refreshes else None,
        )

    def update(self, staging_table: str) -> int:
        """
        UPDATE the target from ``staging_table``; returns rows updated.

        Raises:
            ConfigurationError: If match or SET columns cannot be resolved
            ReconciliationError: If the statement fails
        """
        sql = self.build_update_sql(staging_table)
        return self._execute(sql, "update")

    def upsert(self, staging_table: str) -> int:
        """
        INSERT from ``staging_table`` with the configured conflict handling.

        Returns the row count reported by PostgreSQL, which counts inserted
        and updated rows together; skipped rows are not counted.

        Raises:
            ConfigurationError: If conflict columns cannot be resolved
            ReconciliationError: If the statement fails (including duplicate
                keys under ConflictMode.FAIL)
        """
        sql = self.build_upsert_sql(staging_table)
        return self._execute(sql, "upsert")

    def _execute(self, sql: str, operation: str) -> int:
        table = self.mapping.full_table_name
        logger.debug(f"bulk_import.{operation}.sql", table=table, sql=sql)
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(sql)
                rowcount = cursor.rowcount
        except Exception as exc:
            logger.error(f"bulk_import.{operation}.failed", table=table, error=str(exc))
            raise ReconciliationError(
                f"{operation.upper()} failed for table '{table}': {exc}",
                table=table,
                details={"operation": operation},
            ) from exc

        rows = rowcount if isinstance(rowcount, int) and rowcount >= 0 else 0
        logger.info(f"bulk_import.{operation}.completed", table=table, rows=rows)
        return rows
