"""
Staging table lifecycle.

A staging table is created per UPDATE/UPSERT operation as a copy of the
target's column layout, loaded once via COPY, consumed by one reconciliation
statement and dropped when the operation ends.
"""

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence

from pg_bulk_import.config.import_config import ImportConfig
from pg_bulk_import.exceptions import StagingError
from pg_bulk_import.infrastructure.sql.core.identifier import (
    MAX_IDENTIFIER_LENGTH,
    validate_identifier,
)
from pg_bulk_import.infrastructure.sql.dialects.postgresql import PostgreSQLDialect
from pg_bulk_import.io.loader.copy_executor import resolve_target_schema
from pg_bulk_import.mapping.models import TableMapping
from pg_bulk_import.utils.logging import get_logger

logger = get_logger(__name__)

_SUFFIX_LENGTH = 8


@dataclass(frozen=True)
class StagingHandle:
    """A created staging table and the table it was modelled on."""

    name: str
    owning_table: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def generate_staging_name(prefix: str, table: str) -> str:
    """
    Build ``<prefix><table>_<8 hex>``, shortened to fit PostgreSQL's limit.

    Examples:
        >>> len(generate_staging_name("bulk_staging_", "orders"))
        28
    """
    suffix = "_" + uuid.uuid4().hex[:_SUFFIX_LENGTH]
    base = f"{prefix}{table}"[: MAX_IDENTIFIER_LENGTH - len(suffix)]
    return validate_identifier(base + suffix)


class StagingRelationManager:
    """
    Create, index and drop the staging table of a single operation.

    Example:
        >>> manager = StagingRelationManager(conn, mapping, config)
        >>> with manager.staging() as handle:
        ...     executor.load(rows, staging_table=handle.name)
    """

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
        self.dialect = dialect or PostgreSQLDialect()
        self.handle: Optional[StagingHandle] = None

    def create(self) -> StagingHandle:
        """
        Create the staging table and relax its NOT NULL constraints.

        Raises:
            StagingError: If any DDL statement fails
        """
        if self.handle is not None:
            raise StagingError(
                f"Staging table '{self.handle.name}' already created",
                table=self.mapping.table_name,
            )

        name = generate_staging_name(
            self.config.staging_table_prefix, self.mapping.table_name
        )
        schema = resolve_target_schema(self.mapping, self.config)
        create_sql = self.dialect.build_create_staging(
            name,
            self.mapping.table_name,
            schema,
            unlogged=self.config.use_unlogged_tables,
        )

        try:
            with self.connection.cursor() as cursor:
                cursor.execute(create_sql)
                self.handle = StagingHandle(name=name, owning_table=self.mapping.table_name)
                cursor.execute(self.dialect.build_not_null_columns_query(), (name,))
                not_null = [row[0] for row in cursor.fetchall()]
                for column in not_null:
                    cursor.execute(self.dialect.build_drop_not_null(name, column))
        except Exception as exc:
            raise StagingError(
                f"Failed to create staging table for '{self.mapping.full_table_name}': {exc}",
                table=self.mapping.table_name,
                details={"staging_table": name},
            ) from exc

        logger.debug(
            "bulk_import.staging.created",
            staging_table=name,
            table=self.mapping.full_table_name,
            relaxed_columns=len(not_null),
        )
        return self.handle

    def create_index(self, columns: Sequence[str]) -> str:
        """
        Index the staging table on ``columns`` and return the index name.

        Raises:
            StagingError: If no staging table exists or the DDL fails
        """
        if self.handle is None:
            raise StagingError(
                "Cannot index a staging table that has not been created",
                table=self.mapping.table_name,
            )
        index_name = f"idx_{self.handle.name}"[: MAX_IDENTIFIER_LENGTH - 6] + "_match"
        sql = self.dialect.build_create_index(index_name, self.handle.name, list(columns))
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(sql)
        except Exception as exc:
            raise StagingError(
                f"Failed to index staging table '{self.handle.name}': {exc}",
                table=self.mapping.table_name,
            ) from exc
        return index_name

    def drop(self) -> None:
        """
        Drop the staging table if one was created and cleanup is enabled.

        Never raises: failures are logged, and the table is left to session
        teardown (TEMP tables) or manual cleanup.
        """
        handle = self.handle
        if handle is None:
            return
        self.handle = None

        if not self.config.auto_cleanup_staging:
            logger.debug("bulk_import.staging.retained", staging_table=handle.name)
            return

        try:
            with self.connection.cursor() as cursor:
                cursor.execute(self.dialect.build_drop_table(handle.name))
            logger.debug("bulk_import.staging.dropped", staging_table=handle.name)
        except Exception as exc:
            logger.warning(
                "bulk_import.staging.drop_failed",
                staging_table=handle.name,
                error=str(exc),
            )

    @contextmanager
    def staging(self) -> Iterator[StagingHandle]:
        """Create a staging table and drop it on every exit path."""
        try:
            yield self.create()
        finally:
            self.drop()

