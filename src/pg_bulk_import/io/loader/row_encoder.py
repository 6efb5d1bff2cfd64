"""
Streaming CSV row encoder for COPY ... FROM STDIN (FORMAT csv).

Entities are pulled one at a time from any iterable, so memory use is
bounded by a single row regardless of input size.
"""

from typing import Any, Iterable, Optional, Protocol

from pg_bulk_import.codecs.registry import ValueCodecRegistry, default_registry, is_null
from pg_bulk_import.config.import_config import NullMode
from pg_bulk_import.exceptions import EncodingError
from pg_bulk_import.mapping.models import TableMapping
from pg_bulk_import.utils.logging import get_logger

logger = get_logger(__name__)

_CSV_SPECIAL = frozenset(',"\r\n')
_END_OF_DATA = "\\."


class TextSink(Protocol):
    def write(self, text: str) -> Any: ...


def format_csv_field(token: str, null_token: str, is_null_value: bool) -> str:
    """
    Format one CSV field.

    NULL is written as the bare null token. A non-null token is quoted when it
    contains a delimiter, quote or line break, or when leaving it bare would
    read back as NULL or as the end-of-data marker.

    Examples:
        >>> format_csv_field("a,b", "", False)
        '"a,b"'
        >>> format_csv_field("", "", False)
        '""'
        >>> format_csv_field("", "", True)
        ''
    """
    if is_null_value:
        return null_token
    if (
        token == null_token
        or token == _END_OF_DATA
        or any(ch in _CSV_SPECIAL for ch in token)
    ):
        return '"' + token.replace('"', '""') + '"'
    return token


class RowEncoder:
    """
    Encode entities into COPY CSV records using a TableMapping.

    Example:
        >>> import io
        >>> out = io.StringIO()
        >>> RowEncoder(mapping).encode([entity_a, entity_b], out)
        2
    """

    def __init__(
        self,
        mapping: TableMapping,
        registry: Optional[ValueCodecRegistry] = None,
        null_mode: NullMode = NullMode.EMPTY,
        batch_size: int = 10_000,
    ):
        self.mapping = mapping
        self.registry = registry or default_registry()
        self.null_mode = null_mode
        self.batch_size = batch_size
        self.rows_written = 0

    def encode_row(self, entity: Any, row_index: int = 0) -> str:
        """
        Encode a single entity as one CSV record, including the line feed.

        Raises:
            EncodingError: If a value cannot be extracted or encoded
        """
        null_token = self.null_mode.token
        fields = []
        for column in self.mapping.columns:
            try:
                value = column.extract(entity)
            except Exception as exc:
                raise EncodingError(
                    f"Failed to extract column '{column.name}' at row {row_index}: {exc}",
                    table=self.mapping.table_name,
                    details={"row": row_index, "column": column.name},
                ) from exc

            if is_null(value):
                fields.append(null_token)
                continue

            try:
                codec = self.registry.resolve(type(value))
                token = codec(value)
            except Exception as exc:
                raise EncodingError(
                    f"Failed to encode column '{column.name}' at row {row_index} "
                    f"({type(value).__name__}): {exc}",
                    table=self.mapping.table_name,
                    details={"row": row_index, "column": column.name},
                ) from exc
            fields.append(format_csv_field(token, null_token, False))

        return ",".join(fields) + "\n"

    def encode(self, entities: Iterable[Any], out: TextSink) -> int:
        """
        Write every entity to ``out`` and return the number of rows written.

        Raises:
            EncodingError: On the first entity that cannot be read, extracted
                or encoded; rows before it have already been written
        """
        self.rows_written = 0
        iterator = iter(entities)
        while True:
            try:
                entity = next(iterator)
            except StopIteration:
                break
            except Exception as exc:
                raise EncodingError(
                    f"Failed to read entity at row {self.rows_written}: {exc}",
                    table=self.mapping.table_name,
                    details={"row": self.rows_written},
                ) from exc

            out.write(self.encode_row(entity, self.rows_written))
            self.rows_written += 1
            if self.rows_written % self.batch_size == 0:
                logger.debug(
                    "bulk_import.encode.progress",
                    table=self.mapping.table_name,
                    rows=self.rows_written,
                )

        return self.rows_written
