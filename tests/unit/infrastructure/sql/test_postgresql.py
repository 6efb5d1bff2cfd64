"""
Unit tests for PostgreSQL dialect and ReconcileBuilder.
"""

import pytest

from pg_bulk_import.exceptions import ConfigurationError, InvalidIdentifierError
from pg_bulk_import.infrastructure.sql.dialects.postgresql import PostgreSQLDialect
from pg_bulk_import.infrastructure.sql.operations.reconcile import ReconcileBuilder


class TestPostgreSQLDialect:
    """Tests for PostgreSQL dialect."""

    @pytest.fixture
    def dialect(self):
        return PostgreSQLDialect()

    def test_dialect_name(self, dialect):
        """Dialect should have correct name."""
        assert dialect.name == "postgresql"

    def test_qualify_table(self, dialect):
        """Qualify should add a quoted schema prefix."""
        assert dialect.qualify("orders", schema="sales") == '"sales"."orders"'

    def test_copy_command_default_null(self, dialect):
        """EMPTY null token omits the NULL option."""
        sql = dialect.build_copy_from_stdin('"sales"."orders"', ["id", "qty"])
        assert sql == 'COPY "sales"."orders" ("id", "qty") FROM STDIN WITH (FORMAT csv)'

    def test_copy_command_sentinel_null(self, dialect):
        sql = dialect.build_copy_from_stdin('"orders"', ["id"], "\\N")
        assert sql == 'COPY "orders" ("id") FROM STDIN WITH (FORMAT csv, NULL \'\\N\')'

    def test_copy_command_word_null(self, dialect):
        sql = dialect.build_copy_from_stdin('"orders"', ["id"], "NULL")
        assert sql.endswith("WITH (FORMAT csv, NULL 'NULL')")

    def test_copy_command_rejects_bad_column(self, dialect):
        with pytest.raises(InvalidIdentifierError):
            dialect.build_copy_from_stdin('"orders"', ["id", "qty; DROP"])

    def test_create_staging_temp(self, dialect):
        sql = dialect.build_create_staging("bulk_staging_orders_1a2b3c4d", "orders", "sales")
        assert sql == (
            'CREATE TEMP TABLE "bulk_staging_orders_1a2b3c4d" (LIKE "sales"."orders")'
        )

    def test_create_staging_unlogged(self, dialect):
        sql = dialect.build_create_staging("stg", "orders", unlogged=True)
        assert sql == 'CREATE UNLOGGED TABLE "stg" (LIKE "orders")'

    def test_not_null_query_is_parameterized(self, dialect):
        sql = dialect.build_not_null_columns_query()
        assert "information_schema.columns" in sql
        assert "table_name = %s" in sql
        assert "is_nullable = 'NO'" in sql

    def test_drop_not_null(self, dialect):
        assert (
            dialect.build_drop_not_null("stg", "name")
            == 'ALTER TABLE "stg" ALTER COLUMN "name" DROP NOT NULL'
        )

    def test_create_index(self, dialect):
        assert (
            dialect.build_create_index("idx_stg_match", "stg", ["a", "b"])
            == 'CREATE INDEX "idx_stg_match" ON "stg" ("a", "b")'
        )

    def test_drop_table(self, dialect):
        assert dialect.build_drop_table("stg") == 'DROP TABLE IF EXISTS "stg"'

    def test_update_from(self, dialect):
        sql = dialect.build_update_from(
            "orders", "stg", ["qty", "price"], ["id"], schema="sales"
        )
        assert sql == (
            'UPDATE "sales"."orders" AS t SET "qty" = s."qty", "price" = s."price" '
            'FROM "stg" AS s WHERE t."id" = s."id"'
        )

    def test_update_from_multiple_match_columns(self, dialect):
        sql = dialect.build_update_from("orders", "stg", ["qty"], ["a", "b"])
        assert sql.endswith('WHERE t."a" = s."a" AND t."b" = s."b"')

    def test_insert_select(self, dialect):
        sql = dialect.build_insert_select("orders", "stg", ["id", "qty"])
        assert sql == 'INSERT INTO "orders" ("id", "qty") SELECT "id", "qty" FROM "stg"'

    def test_on_conflict_do_nothing(self, dialect):
        assert dialect.build_on_conflict_do_nothing(["id"]) == ' ON CONFLICT ("id") DO NOTHING'

    def test_on_conflict_do_update(self, dialect):
        clause = dialect.build_on_conflict_do_update(["id"], ["qty", "price"])
        assert clause == (
            ' ON CONFLICT ("id") DO UPDATE SET "qty" = EXCLUDED."qty", '
            '"price" = EXCLUDED."price"'
        )


class TestReconcileBuilder:
    """Tests for ReconcileBuilder."""

    @pytest.fixture
    def builder(self):
        return ReconcileBuilder(PostgreSQLDialect())

    def test_upsert_error_action_has_no_clause(self, builder):
        sql = builder.upsert(None, "orders", "stg", ["id", "qty"], ["id"], "error")
        assert "ON CONFLICT" not in sql

    def test_upsert_do_nothing(self, builder):
        sql = builder.upsert("public", "orders", "stg", ["id", "qty"], ["id"], "do_nothing")
        assert sql == (
            'INSERT INTO "public"."orders" ("id", "qty") SELECT "id", "qty" FROM "stg" '
            'ON CONFLICT ("id") DO NOTHING'
        )

    def test_upsert_do_update(self, builder):
        sql = builder.upsert(
            None, "orders", "stg", ["id", "qty"], ["id"], "do_update", ["qty"]
        )
        assert sql.endswith('ON CONFLICT ("id") DO UPDATE SET "qty" = EXCLUDED."qty"')

    def test_upsert_requires_conflict_columns(self, builder):
        with pytest.raises(ConfigurationError):
            builder.upsert(None, "orders", "stg", ["qty"], [], "do_nothing")

    def test_upsert_do_update_requires_update_columns(self, builder):
        with pytest.raises(ConfigurationError):
            builder.upsert(None, "orders", "stg", ["id"], ["id"], "do_update", [])

    def test_update_requires_match_columns(self, builder):
        with pytest.raises(ConfigurationError):
            builder.update(None, "orders", "stg", ["qty"], [])

    def test_update_requires_set_columns(self, builder):
        with pytest.raises(ConfigurationError):
            builder.update(None, "orders", "stg", [], ["id"])
