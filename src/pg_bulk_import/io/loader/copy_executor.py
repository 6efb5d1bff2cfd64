"""
COPY ... FROM STDIN executor.

Runs the row encoder on a single worker thread writing into a bounded pipe
while the calling thread drives the driver's COPY call reading from it.
Supports psycopg2 (``cursor.copy_expert``) and psycopg 3 (``cursor.copy``).
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Iterable, Optional, Tuple

from pg_bulk_import.codecs.registry import ValueCodecRegistry, default_registry
from pg_bulk_import.config.import_config import ImportConfig
from pg_bulk_import.exceptions import BulkLoadNotSupportedError, LoadError
from pg_bulk_import.infrastructure.sql.dialects.postgresql import PostgreSQLDialect
from pg_bulk_import.io.loader.pipe import DEFAULT_CHUNK_SIZE, BoundedPipe, PipeSource
from pg_bulk_import.io.loader.row_encoder import RowEncoder
from pg_bulk_import.mapping.models import TableMapping
from pg_bulk_import.utils.logging import get_logger

logger = get_logger(__name__)


def supports_copy(cursor: Any) -> bool:
    """True when the cursor exposes a psycopg2 or psycopg 3 COPY entry point."""
    return callable(getattr(cursor, "copy_expert", None)) or callable(
        getattr(cursor, "copy", None)
    )


def resolve_target_schema(mapping: TableMapping, config: ImportConfig) -> Optional[str]:
    """The configured schema override wins over the mapping's schema."""
    return config.schema_name or mapping.schema_name


class BulkLoadExecutor:
    """
    Stream entities into a table through the COPY protocol.

    Example:
        >>> executor = BulkLoadExecutor(conn, mapping, ImportConfig())
        >>> executor.load(orders)
        1000
    """

    def __init__(
        self,
        connection: Any,
        mapping: TableMapping,
        config: Optional[ImportConfig] = None,
        registry: Optional[ValueCodecRegistry] = None,
        dialect: Optional[PostgreSQLDialect] = None,
    ):
        self.connection = connection
        self.mapping = mapping
        self.config = config or ImportConfig.defaults()
        self.registry = registry or default_registry()
        self.dialect = dialect or PostgreSQLDialect()

    def target_name(self, staging_table: Optional[str] = None) -> str:
        """Quoted COPY target: the staging table (unqualified) or the mapped table."""
        if staging_table:
            return self.dialect.quote(staging_table)
        return self.dialect.qualify(
            self.mapping.table_name, resolve_target_schema(self.mapping, self.config)
        )

    def build_copy_command(self, staging_table: Optional[str] = None) -> str:
        return self.dialect.build_copy_from_stdin(
            self.target_name(staging_table),
            self.mapping.column_names,
            self.config.null_mode.token,
        )

    def load(self, entities: Iterable[Any], staging_table: Optional[str] = None) -> int:
        """
        Load entities into the mapped table, or into ``staging_table`` if given.

        Args:
            entities: Materialized or lazy sequence of entities
            staging_table: Unqualified staging table name to load instead

        Returns:
            Rows loaded (server-reported when available, else rows encoded)

        Raises:
            BulkLoadNotSupportedError: If the connection cannot run COPY
            EncodingError: If an entity cannot be encoded (COPY is aborted)
            LoadError: If the COPY command itself fails
        """
        table = staging_table or self.mapping.full_table_name
        sql = self.build_copy_command(staging_table)
        start = time.perf_counter()

        with self.connection.cursor() as cursor:
            if not supports_copy(cursor):
                raise BulkLoadNotSupportedError.for_connection(self.connection, table)

            logger.info(
                "bulk_import.copy.started",
                table=table,
                columns=len(self.mapping.columns),
            )
            logger.debug("bulk_import.copy.sql", sql=sql)

            encoder = RowEncoder(
                self.mapping,
                registry=self.registry,
                null_mode=self.config.null_mode,
                batch_size=self.config.batch_size,
            )
            pipe = BoundedPipe(self.config.pipe_buffer_size)
            pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pgbulk-encoder")
            try:
                future = pool.submit(self._write, encoder, entities, pipe)

                copy_error: Optional[BaseException] = None
                try:
                    self._run_copy(cursor, sql, pipe.source)
                except Exception as exc:
                    copy_error = exc
                finally:
                    pipe.source.close()

                encoded, writer_error = self._join_writer(future, pipe, encoder, table)
            finally:
                pool.shutdown(wait=False)

            if writer_error is not None and not isinstance(writer_error, BrokenPipeError):
                if copy_error is not None and writer_error.__cause__ is None:
                    raise writer_error from copy_error
                raise writer_error
            if copy_error is not None:
                logger.error("bulk_import.copy.failed", table=table, error=str(copy_error))
                raise LoadError.copy_failed(table, copy_error) from copy_error

            rows = self._row_count(cursor, encoded)

        logger.info(
            "bulk_import.copy.completed",
            table=table,
            rows=rows,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return rows

    @staticmethod
    def _write(encoder: RowEncoder, entities: Iterable[Any], pipe: BoundedPipe) -> int:
        try:
            count = encoder.encode(entities, pipe.sink)
            pipe.sink.close()
            return count
        except BrokenPipeError:
            raise
        except BaseException as exc:
            pipe.sink.abort(exc)
            raise

    @staticmethod
    def _run_copy(cursor: Any, sql: str, source: PipeSource) -> None:
        copy_expert = getattr(cursor, "copy_expert", None)
        if callable(copy_expert):
            copy_expert(sql, source, DEFAULT_CHUNK_SIZE)
            return

        with cursor.copy(sql) as copy:
            while True:
                chunk = source.read(DEFAULT_CHUNK_SIZE)
                if not chunk:
                    break
                copy.write(chunk)

    def _join_writer(
        self,
        future: "Future[int]",
        pipe: BoundedPipe,
        encoder: RowEncoder,
        table: str,
    ) -> Tuple[Optional[int], Optional[BaseException]]:
        try:
            return future.result(timeout=self.config.writer_join_timeout), None
        except FuturesTimeoutError:
            pipe.sink.abort(TimeoutError("encoder did not finish after COPY"))
            logger.warning(
                "bulk_import.copy.writer_timeout",
                table=table,
                timeout=self.config.writer_join_timeout,
                rows=encoder.rows_written,
            )
            return encoder.rows_written, None
        except BaseException as exc:
            return None, exc

    @staticmethod
    def _row_count(cursor: Any, encoded: Optional[int]) -> int:
        rowcount = getattr(cursor, "rowcount", None)
        if isinstance(rowcount, int) and not isinstance(rowcount, bool) and rowcount >= 0:
            return rowcount
        return encoded or 0
