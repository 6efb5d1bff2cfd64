"""Pytest configuration for the optional PostgreSQL suite and shared fakes.

An optional ``.pgbulk_env`` file next to the repository root is loaded first so
database settings for the PostgreSQL suite can live outside the shell.
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

_ENV_FILE = Path(__file__).parent.parent / ".pgbulk_env"
if _ENV_FILE.exists():
    load_dotenv(_ENV_FILE, override=True)

import os
import re
import uuid
from typing import Any, Callable, Generator, List, Optional
from unittest.mock import MagicMock
from urllib.parse import urlparse, urlunparse

import psycopg2
import pytest
from psycopg2 import sql

from pg_bulk_import.config import get_settings

POSTGRES_OPTION = "run_postgres_tests"
POSTGRES_MARK = "postgres_suite"
POSTGRES_ENV = "RUN_POSTGRES_TESTS"
TEST_DSN_ENV = "PGBULK_TEST_DATABASE_URI"


def _env_enabled(name: str) -> bool:
    """Return True when the opt-in environment flag is set to '1'."""
    return os.getenv(name) == "1"


def _validate_test_database(dsn: str) -> bool:
    """Refuse to create scratch databases next to non-test databases.

    Examples:
        >>> _validate_test_database("postgresql://localhost/bulk_test")
        True
    """
    if os.getenv("PGBULK_SKIP_DB_VALIDATION") == "1":
        return True

    db_name = urlparse(dsn).path.lstrip("/")
    if not db_name or not re.search(r"(test|tmp|dev|local|sandbox)", db_name, re.IGNORECASE):
        raise RuntimeError(
            f"Refusing to run tests against non-test database: {db_name!r}. "
            "Test databases must contain one of: test, tmp, dev, local, sandbox. "
            "Override with PGBULK_SKIP_DB_VALIDATION=1 (DANGEROUS)."
        )
    return True


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register a CLI flag that mirrors the RUN_POSTGRES_TESTS toggle."""
    parser.addoption(
        "--run-postgres-tests",
        action="store_true",
        dest=POSTGRES_OPTION,
        default=_env_enabled(POSTGRES_ENV),
        help="Run the PostgreSQL-backed suite "
        "(set RUN_POSTGRES_TESTS=1 or pass --run-postgres-tests).",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Skip the PostgreSQL suite unless its flag is enabled."""
    run_postgres = config.getoption(POSTGRES_OPTION)
    skip_postgres = pytest.mark.skip(
        reason="Set RUN_POSTGRES_TESTS=1 or pass --run-postgres-tests to run the PostgreSQL suite."
    )
    for item in items:
        if POSTGRES_MARK in item.keywords and not run_postgres:
            item.add_marker(skip_postgres)


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ============================================================================
# Fake psycopg2 connections
# ============================================================================


class FakeCursor:
    """psycopg2-style cursor recording SQL and draining COPY sources."""

    def __init__(
        self,
        copy_error: Optional[BaseException] = None,
        execute_error: Optional[Callable[[str], Optional[BaseException]]] = None,
        fetch_rows: Optional[List[tuple]] = None,
        rowcount: int = -1,
        read_size: int = 8192,
    ):
        self.executed: List[tuple] = []
        self.copy_sql: List[str] = []
        self.copied = b""
        self.copy_error = copy_error
        self.execute_error = execute_error
        self.fetch_rows = fetch_rows or []
        self.rowcount = rowcount
        self.read_size = read_size

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc: Any) -> bool:
        return False

    def execute(self, query: str, params: Any = None) -> None:
        self.executed.append((query, params))
        if self.execute_error is not None:
            error = self.execute_error(query)
            if error is not None:
                raise error

    def fetchall(self) -> List[tuple]:
        return list(self.fetch_rows)

    def copy_expert(self, query: str, file: Any, size: int = 8192) -> None:
        self.copy_sql.append(query)
        while True:
            chunk = file.read(self.read_size)
            if not chunk:
                break
            self.copied += chunk
            if self.copy_error is not None:
                raise self.copy_error

    @property
    def statements(self) -> List[str]:
        return [query for query, _ in self.executed]


class FakeConnection:
    """Connection handing out one shared FakeCursor."""

    def __init__(self, cursor: Optional[FakeCursor] = None):
        self.cursor_obj = cursor or FakeCursor()
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self) -> FakeCursor:
        return self.cursor_obj

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_cursor() -> FakeCursor:
    return FakeCursor()


@pytest.fixture
def fake_connection(fake_cursor: FakeCursor) -> FakeConnection:
    return FakeConnection(fake_cursor)


def build_mock_connection():
    """Create a MagicMock psycopg2 connection with context-aware cursor."""
    conn = MagicMock()
    cursor = MagicMock()
    cursor.__enter__.return_value = cursor
    cursor.__exit__.return_value = False
    conn.cursor.return_value = cursor
    return conn, cursor


# ============================================================================
# PostgreSQL suite
# ============================================================================


def _resolve_postgres_dsn() -> str:
    database_url = os.environ.get(TEST_DSN_ENV)
    if not database_url or not database_url.startswith("postgres"):
        pytest.skip(f"{TEST_DSN_ENV} must be set for postgres-backed tests")
    return database_url


def _create_ephemeral_database(base_dsn: str) -> tuple[str, str, str]:
    parsed = urlparse(base_dsn)
    base_db = parsed.path.lstrip("/") or "postgres"
    admin_db = "postgres" if base_db != "postgres" else base_db
    temp_db = f"{base_db}_test_{uuid.uuid4().hex[:8]}"

    admin_dsn = urlunparse(parsed._replace(path=f"/{admin_db}"))
    temp_dsn = urlunparse(parsed._replace(path=f"/{temp_db}"))

    conn = psycopg2.connect(admin_dsn)
    conn.autocommit = True
    try:
        with conn.cursor() as cursor:
            cursor.execute(
                sql.SQL("CREATE DATABASE {} TEMPLATE template0").format(
                    sql.Identifier(temp_db)
                )
            )
    finally:
        conn.close()

    return temp_dsn, temp_db, admin_dsn


def _drop_database(admin_dsn: str, db_name: str) -> None:
    conn = psycopg2.connect(admin_dsn)
    conn.autocommit = True
    try:
        with conn.cursor() as cursor:
            cursor.execute(
                """
                SELECT pg_terminate_backend(pid)
                FROM pg_stat_activity
                WHERE datname = %s AND pid <> pg_backend_pid();
                """,
                (db_name,),
            )
            cursor.execute(
                sql.SQL("DROP DATABASE IF EXISTS {}").format(sql.Identifier(db_name))
            )
    finally:
        conn.close()


@pytest.fixture
def postgres_dsn() -> Generator[str, None, None]:
    """Create a temporary PostgreSQL database and yield its DSN."""
    base_dsn = _resolve_postgres_dsn()
    temp_dsn, temp_db, admin_dsn = _create_ephemeral_database(base_dsn)
    try:
        yield temp_dsn
    finally:
        _validate_test_database(temp_dsn)
        _drop_database(admin_dsn, temp_db)


@pytest.fixture
def postgres_connection(postgres_dsn: str):
    """Provide a live psycopg2 connection to the temporary database."""
    conn = psycopg2.connect(postgres_dsn, connect_timeout=5)
    try:
        yield conn
    finally:
        conn.rollback()
        conn.close()
