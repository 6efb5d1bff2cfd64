"""
Per-operation import configuration.

ImportConfig is an immutable Pydantic model. Invalid combinations are
rejected when the model is built, never when an import runs.
"""

from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pg_bulk_import.exceptions import ConfigurationError, InvalidIdentifierError
from pg_bulk_import.infrastructure.sql.core.identifier import validate_identifier

DEFAULT_STAGING_PREFIX = "bulk_staging_"
DEFAULT_PIPE_BUFFER_SIZE = 1024 * 1024


class ConflictMode(str, Enum):
    """Policy for rows whose conflict columns collide during upsert."""

    FAIL = "fail"
    SKIP = "skip"
    REPLACE_ALL = "replace_all"
    REPLACE_SPECIFIED = "replace_specified"

    @property
    def refreshes(self) -> bool:
        return self in (ConflictMode.REPLACE_ALL, ConflictMode.REPLACE_SPECIFIED)

    @classmethod
    def parse(cls, value: Any) -> "ConflictMode":
        """Accept a member, its value or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.lower() in (member.value, member.name.lower()):
                return member
        raise ConfigurationError(f"Unknown conflict mode: {value!r}")


class NullMode(Enum):
    """How NULL is written into the COPY CSV stream; each member is its token."""

    EMPTY = ""
    SENTINEL = "\\N"
    WORD = "NULL"

    @property
    def token(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "NullMode":
        """Accept a member, its name (case-insensitive) or its literal token."""
        if isinstance(value, cls):
            return value
        text = str(value)
        for member in cls:
            if text.strip().upper() == member.name:
                return member
        for member in cls:
            if text == member.token:
                return member
        raise ConfigurationError(f"Unknown null mode: {value!r}")


class ImportConfig(BaseModel):
    """
    Configuration for bulk insert, update and upsert operations.

    Column lists are stored as tuples. Use ``replace(**changes)`` to derive a
    new validated configuration.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    conflict_mode: ConflictMode = Field(
        default=ConflictMode.FAIL, description="Upsert conflict policy"
    )
    conflict_columns: Tuple[str, ...] = Field(
        default=(), description="Columns for the ON CONFLICT target"
    )
    update_columns: Tuple[str, ...] = Field(
        default=(), description="Columns refreshed on conflict or by UPDATE"
    )
    match_columns: Tuple[str, ...] = Field(
        default=(), description="Join columns for UPDATE (default: id columns)"
    )
    staging_table_prefix: str = Field(
        default=DEFAULT_STAGING_PREFIX, description="Prefix for staging table names"
    )
    auto_cleanup_staging: bool = Field(
        default=True, description="Drop staging tables when an operation ends"
    )
    null_mode: NullMode = Field(
        default=NullMode.EMPTY, description="NULL representation in the CSV stream"
    )
    schema_name: Optional[str] = Field(
        default=None, description="Schema override for the target table"
    )
    use_unlogged_tables: bool = Field(
        default=False, description="Create staging as UNLOGGED instead of TEMP"
    )
    index_staging_match_columns: bool = Field(
        default=False, description="Index staging match columns before UPDATE"
    )
    batch_size: int = Field(
        default=10_000, description="Rows between progress log events"
    )
    pipe_buffer_size: int = Field(
        default=DEFAULT_PIPE_BUFFER_SIZE,
        description="Capacity of the encoder-to-COPY pipe in bytes",
    )
    writer_join_timeout: float = Field(
        default=30.0, description="Seconds to wait for the encoder thread after COPY"
    )

    @field_validator("conflict_mode", mode="before")
    @classmethod
    def _parse_conflict_mode(cls, value: Any) -> ConflictMode:
        return ConflictMode.parse(value)

    @field_validator("null_mode", mode="before")
    @classmethod
    def _parse_null_mode(cls, value: Any) -> NullMode:
        return NullMode.parse(value)

    @field_validator(
        "conflict_columns", "update_columns", "match_columns", mode="before"
    )
    @classmethod
    def _split_columns(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

    @model_validator(mode="after")
    def _validate_combination(self) -> "ImportConfig":
        if self.conflict_mode.refreshes and not self.conflict_columns:
            raise ConfigurationError.missing_conflict_columns()

        if (
            self.conflict_mode == ConflictMode.REPLACE_SPECIFIED
            and not self.update_columns
        ):
            raise ConfigurationError.missing_update_columns()

        if self.batch_size <= 0:
            raise ConfigurationError(
                f"Batch size must be greater than 0, got: {self.batch_size}"
            )
        if self.pipe_buffer_size <= 0:
            raise ConfigurationError(
                f"Pipe buffer size must be greater than 0, got: {self.pipe_buffer_size}"
            )
        if self.writer_join_timeout <= 0:
            raise ConfigurationError(
                "Writer join timeout must be greater than 0, "
                f"got: {self.writer_join_timeout}"
            )

        names = [
            *self.conflict_columns,
            *self.update_columns,
            *self.match_columns,
        ]
        if self.schema_name:
            names.append(self.schema_name)
        try:
            for name in names:
                validate_identifier(name)
            # The prefix must itself be a valid identifier start.
            validate_identifier(self.staging_table_prefix)
        except InvalidIdentifierError as exc:
            raise ConfigurationError(str(exc), details=exc.details) from exc

        return self

    @classmethod
    def defaults(cls) -> "ImportConfig":
        return cls()

    def replace(self, **changes: Any) -> "ImportConfig":
        """Return a new, re-validated configuration with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return ImportConfig(**data)

    @property
    def has_explicit_match_columns(self) -> bool:
        return bool(self.match_columns)

    @property
    def has_conflict_columns(self) -> bool:
        return bool(self.conflict_columns)

    @property
    def has_update_columns(self) -> bool:
        return bool(self.update_columns)
