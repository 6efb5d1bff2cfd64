"""
Environment-based configuration for pg_bulk_import.

Settings are loaded with Pydantic BaseSettings from ``PGBULK_``-prefixed
environment variables and an optional ``.env`` file, so deployments can set
connection details and import defaults without code changes.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pg_bulk_import.config.import_config import (
    DEFAULT_PIPE_BUFFER_SIZE,
    DEFAULT_STAGING_PREFIX,
    ConflictMode,
    ImportConfig,
    NullMode,
)

ENV_FILE_OVERRIDE = os.getenv("PGBULK_ENV_FILE")
SETTINGS_ENV_FILE = Path(ENV_FILE_OVERRIDE).expanduser() if ENV_FILE_OVERRIDE else Path(".env")


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Environment variables use the PGBULK_ prefix, e.g. PGBULK_DATABASE_URI or
    PGBULK_CONFLICT_MODE. LOG_LEVEL is read without prefix as well.
    """

    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias=AliasChoices("PGBULK_LOG_LEVEL", "LOG_LEVEL"),
        description="Logging level (uppercase)",
    )

    # Database connection
    database_host: str = Field(default="localhost", description="Database host")
    database_port: int = Field(default=5432, description="Database port")
    database_user: str = Field(default="postgres", description="Database user")
    database_password: str = Field(default="", description="Database password")
    database_db: str = Field(default="postgres", description="Database name")
    database_uri: Optional[str] = Field(
        default=None,
        description="Complete database URI",
        validation_alias=AliasChoices("PGBULK_DATABASE__URI", "PGBULK_DATABASE_URI"),
    )
    connect_timeout: int = Field(default=5, description="Connect timeout in seconds")

    # Import defaults
    conflict_mode: str = Field(
        default=ConflictMode.FAIL.value,
        description="fail, skip, replace_all or replace_specified",
    )
    conflict_columns: str = Field(
        default="", description="Comma-separated ON CONFLICT columns"
    )
    update_columns: str = Field(
        default="", description="Comma-separated refresh columns"
    )
    match_columns: str = Field(
        default="", description="Comma-separated UPDATE match columns"
    )
    null_mode: str = Field(
        default=NullMode.EMPTY.name, description="EMPTY, SENTINEL or WORD"
    )
    staging_table_prefix: str = Field(
        default=DEFAULT_STAGING_PREFIX, description="Prefix for staging table names"
    )
    auto_cleanup_staging: bool = Field(
        default=True, description="Drop staging tables after each operation"
    )
    schema_name: Optional[str] = Field(
        default=None, description="Default schema for target tables"
    )
    use_unlogged_tables: bool = Field(
        default=False, description="Create UNLOGGED instead of TEMP staging tables"
    )
    batch_size: int = Field(
        default=10_000, description="Rows between progress log events"
    )
    index_staging_match_columns: bool = Field(
        default=False, description="Index staging match columns before UPDATE"
    )
    pipe_buffer_size: int = Field(
        default=DEFAULT_PIPE_BUFFER_SIZE, description="Bytes buffered between encoder and COPY"
    )
    writer_join_timeout: float = Field(
        default=30.0, description="Seconds to wait for the encoder thread after COPY"
    )

    def get_database_connection_string(self) -> str:
        """
        Return the PostgreSQL DSN used by ``BulkImporter.from_settings``.

        An explicit ``database_uri`` wins, with the legacy ``postgres://``
        scheme rewritten to ``postgresql://``. Otherwise the URI is built from
        the component fields, percent-encoding the user and password.
        """
        if self.database_uri:
            uri = self.database_uri
            if uri.startswith("postgres://"):
                uri = "postgresql://" + uri[len("postgres://") :]
            return uri

        credentials = quote(self.database_user, safe="")
        if self.database_password:
            credentials += ":" + quote(self.database_password, safe="")
        if credentials:
            credentials += "@"
        return (
            f"postgresql://{credentials}{self.database_host}:{self.database_port}"
            f"/{self.database_db}"
        )

    def to_import_config(self) -> ImportConfig:
        """
        Build a validated ImportConfig from these settings.

        Raises:
            ConfigurationError: If the configured combination is invalid
        """
        return ImportConfig(
            conflict_mode=self.conflict_mode,
            conflict_columns=self.conflict_columns,
            update_columns=self.update_columns,
            match_columns=self.match_columns,
            null_mode=self.null_mode,
            staging_table_prefix=self.staging_table_prefix,
            auto_cleanup_staging=self.auto_cleanup_staging,
            schema_name=self.schema_name or None,
            use_unlogged_tables=self.use_unlogged_tables,
            batch_size=self.batch_size,
            index_staging_match_columns=self.index_staging_match_columns,
            pipe_buffer_size=self.pipe_buffer_size,
            writer_join_timeout=self.writer_join_timeout,
        )

    model_config = SettingsConfigDict(
        env_prefix="PGBULK_",
        env_file=str(SETTINGS_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once and reused; tests call
    ``get_settings.cache_clear()`` after changing the environment.
    """
    return Settings()
