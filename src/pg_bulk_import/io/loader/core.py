"""
Bulk importer orchestrating COPY loads, staging tables and reconciliation.

BulkImporter is the public entry point: ``insert`` streams entities straight
into the target table, ``update`` and ``upsert`` stream them into a staging
table first and then reconcile with one set-based statement.
"""

import itertools
import time
from collections.abc import Sized
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Optional

import pandas as pd
import psycopg2

from pg_bulk_import.codecs.registry import ValueCodecRegistry, default_registry
from pg_bulk_import.config.import_config import ImportConfig
from pg_bulk_import.config.settings import Settings, get_settings
from pg_bulk_import.exceptions import BulkImportError, EncodingError
from pg_bulk_import.io.loader.copy_executor import BulkLoadExecutor
from pg_bulk_import.io.loader.set_operations import SetOperationExecutor
from pg_bulk_import.io.loader.staging import StagingRelationManager
from pg_bulk_import.mapping.derive import iter_dataframe_records
from pg_bulk_import.mapping.models import TableMapping
from pg_bulk_import.utils.logging import get_logger

logger = get_logger(__name__)

ConnectionFactory = Callable[[], Any]


class BulkImporter:
    """
    High-throughput INSERT, UPDATE and UPSERT through PostgreSQL COPY.

    The importer holds no per-call state. Given a connection it runs inside the
    caller's transaction and never commits or closes it; given a connection
    factory it opens, commits (or rolls back) and closes one connection per
    operation.

    Example:
        >>> importer = BulkImporter(conn, ImportConfig(conflict_mode="skip"))
        >>> importer.upsert(mapping, orders)
        1000
    """

    def __init__(
        self,
        connection: Any = None,
        config: Optional[ImportConfig] = None,
        registry: Optional[ValueCodecRegistry] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        if (connection is None) == (connection_factory is None):
            raise BulkImportError(
                "Exactly one of connection or connection_factory must be provided"
            )
        self._connection = connection
        self._connection_factory = connection_factory
        self.config = config or ImportConfig.defaults()
        self.registry = (registry or default_registry()).copy()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BulkImporter":
        """
        Build an importer from environment settings.

        Each operation opens its own psycopg2 connection to
        ``settings.get_database_connection_string()``.

        Raises:
            ConfigurationError: If the configured import defaults are invalid
        """
        settings = settings or get_settings()
        dsn = settings.get_database_connection_string()
        timeout = settings.connect_timeout

        def connect() -> Any:
            return psycopg2.connect(dsn, connect_timeout=timeout)

        return cls(
            config=settings.to_import_config(),
            connection_factory=connect,
        )

    def with_config(self, config: ImportConfig) -> "BulkImporter":
        """Return a new importer sharing the connection source but using ``config``."""
        return BulkImporter(
            connection=self._connection,
            config=config,
            registry=self.registry,
            connection_factory=self._connection_factory,
        )

    def register_codec(self, value_type: type, codec: Callable[[Any], str]) -> "BulkImporter":
        """Register a codec on this importer's private registry."""
        self.registry.register(value_type, codec)
        return self

    def insert(self, mapping: TableMapping, entities: Iterable[Any]) -> int:
        """
        COPY entities directly into the mapped table.

        Returns:
            Rows inserted; 0 for empty input, without touching the connection
        """
        rows = self._prepare(mapping, entities, "insert")
        if rows is None:
            return 0

        start = time.perf_counter()
        with self._connect() as conn:
            count = BulkLoadExecutor(conn, mapping, self.config, self.registry).load(rows)
        self._log_completed("insert", mapping, count, start)
        return count

    def update(self, mapping: TableMapping, entities: Iterable[Any]) -> int:
        """
        UPDATE existing rows from entities via a staging table.

        Rows are matched on the configured match columns (default: id
        columns); unmatched entities are ignored.

        Returns:
            Rows updated
        """
        operations = SetOperationExecutor(None, mapping, self.config)
        operations.check_update()

        rows = self._prepare(mapping, entities, "update")
        if rows is None:
            return 0

        start = time.perf_counter()
        with self._connect() as conn:
            operations.connection = conn
            staging = StagingRelationManager(conn, mapping, self.config)
            with staging.staging() as handle:
                BulkLoadExecutor(conn, mapping, self.config, self.registry).load(
                    rows, staging_table=handle.name
                )
                if self.config.index_staging_match_columns:
                    staging.create_index(operations.match_columns())
                count = operations.update(handle.name)
        self._log_completed("update", mapping, count, start)
        return count

    def upsert(self, mapping: TableMapping, entities: Iterable[Any]) -> int:
        """
        INSERT entities with the configured ConflictMode via a staging table.

        Returns:
            Rows inserted plus rows updated, as reported by PostgreSQL
        """
        operations = SetOperationExecutor(None, mapping, self.config)
        operations.check_upsert()

        rows = self._prepare(mapping, entities, "upsert")
        if rows is None:
            return 0

        start = time.perf_counter()
        with self._connect() as conn:
            operations.connection = conn
            staging = StagingRelationManager(conn, mapping, self.config)
            with staging.staging() as handle:
                BulkLoadExecutor(conn, mapping, self.config, self.registry).load(
                    rows, staging_table=handle.name
                )
                count = operations.upsert(handle.name)
        self._log_completed("upsert", mapping, count, start)
        return count

    @contextmanager
    def _connect(self) -> Iterator[Any]:
        if self._connection is not None:
            yield self._connection
            return

        conn = self._connection_factory()
        try:
            yield conn
            conn.commit()
        except BaseException:
            try:
                conn.rollback()
            except Exception as rollback_exc:
                logger.warning("bulk_import.rollback_failed", error=str(rollback_exc))
            raise
        finally:
            conn.close()

    def _prepare(
        self, mapping: TableMapping, entities: Iterable[Any], operation: str
    ) -> Optional[Iterable[Any]]:
        """Return an iterable of the entities, or None when there are none."""
        if entities is None:
            raise BulkImportError("entities cannot be None", table=mapping.table_name)

        if isinstance(entities, pd.DataFrame):
            if entities.empty:
                self._log_skipped(operation, mapping)
                return None
            return iter_dataframe_records(entities)

        if isinstance(entities, Sized):
            if len(entities) == 0:
                self._log_skipped(operation, mapping)
                return None
            return entities

        iterator = iter(entities)
        try:
            first = next(iterator)
        except StopIteration:
            self._log_skipped(operation, mapping)
            return None
        except Exception as exc:
            raise EncodingError(
                f"Failed to read entity at row 0: {exc}",
                table=mapping.table_name,
                details={"row": 0},
            ) from exc
        return itertools.chain([first], iterator)

    @staticmethod
    def _log_skipped(operation: str, mapping: TableMapping) -> None:
        logger.info(
            "bulk_import.operation.skipped",
            operation=operation,
            reason="empty_input",
            table=mapping.full_table_name,
        )

    @staticmethod
    def _log_completed(operation: str, mapping: TableMapping, rows: int, start: float) -> None:
        logger.info(
            "bulk_import.operation.completed",
            operation=operation,
            table=mapping.full_table_name,
            rows=rows,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
