"""
PostgreSQL-specific SQL dialect implementation.

Provides PostgreSQL syntax for COPY ... FROM STDIN, staging table DDL,
UPDATE ... FROM joins and INSERT ... SELECT with conflict handling.
Every identifier is validated and quoted; values never appear in SQL text.
"""

from typing import Optional, Sequence

from ..core.identifier import qualify_table, quote_and_join, quote_identifier

NOT_NULL_COLUMNS_QUERY = (
    "SELECT column_name FROM information_schema.columns "
    "WHERE table_name = %s AND is_nullable = 'NO'"
)


class PostgreSQLDialect:
    """PostgreSQL SQL dialect implementation."""

    name = "postgresql"

    def quote(self, identifier: str) -> str:
        """Quote an identifier using PostgreSQL syntax (double quotes)."""
        return quote_identifier(identifier)

    def qualify(self, table: str, schema: Optional[str] = None) -> str:
        """Create a fully qualified table reference."""
        return qualify_table(table, schema)

    def build_copy_from_stdin(
        self,
        target: str,
        columns: Sequence[str],
        null_token: str = "",
    ) -> str:
        """
        Build a COPY ... FROM STDIN statement in CSV format.

        Args:
            target: Already quoted (and possibly schema-qualified) relation
            columns: Column names in stream order
            null_token: NULL representation; the NULL option is omitted for
                the protocol default (empty string)

        Returns:
            COPY SQL statement

        Examples:
            >>> PostgreSQLDialect().build_copy_from_stdin('"t"', ["a", "b"])
            'COPY "t" ("a", "b") FROM STDIN WITH (FORMAT csv)'
        """
        options = "FORMAT csv"
        if null_token:
            escaped = null_token.replace("'", "''")
            options += f", NULL '{escaped}'"
        return f"COPY {target} ({quote_and_join(columns)}) FROM STDIN WITH ({options})"

    def build_create_staging(
        self,
        staging: str,
        table: str,
        schema: Optional[str] = None,
        unlogged: bool = False,
    ) -> str:
        """Build CREATE TEMP (or UNLOGGED) TABLE ... (LIKE target)."""
        kind = "UNLOGGED" if unlogged else "TEMP"
        return (
            f"CREATE {kind} TABLE {self.quote(staging)} "
            f"(LIKE {self.qualify(table, schema)})"
        )

    def build_not_null_columns_query(self) -> str:
        """Query listing NOT NULL columns of a relation; takes its name as %s."""
        return NOT_NULL_COLUMNS_QUERY

    def build_drop_not_null(self, table: str, column: str) -> str:
        return (
            f"ALTER TABLE {self.quote(table)} "
            f"ALTER COLUMN {self.quote(column)} DROP NOT NULL"
        )

    def build_create_index(
        self, index_name: str, table: str, columns: Sequence[str]
    ) -> str:
        return (
            f"CREATE INDEX {self.quote(index_name)} ON {self.quote(table)} "
            f"({quote_and_join(columns)})"
        )

    def build_drop_table(self, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self.quote(table)}"

    def build_update_from(
        self,
        table: str,
        source: str,
        set_columns: Sequence[str],
        match_columns: Sequence[str],
        schema: Optional[str] = None,
    ) -> str:
        """
        Build UPDATE target AS t SET ... FROM source AS s WHERE t.m = s.m.

        Args:
            table: Target table name
            source: Unqualified source (staging) relation name
            set_columns: Columns copied from source to target
            match_columns: Join columns
            schema: Optional schema for the target

        Returns:
            UPDATE SQL statement
        """
        set_clause = ", ".join(
            f"{self.quote(col)} = s.{self.quote(col)}" for col in set_columns
        )
        where_clause = " AND ".join(
            f"t.{self.quote(col)} = s.{self.quote(col)}" for col in match_columns
        )
        return (
            f"UPDATE {self.qualify(table, schema)} AS t SET {set_clause} "
            f"FROM {self.quote(source)} AS s WHERE {where_clause}"
        )

    def build_insert_select(
        self,
        table: str,
        source: str,
        columns: Sequence[str],
        schema: Optional[str] = None,
    ) -> str:
        """Build INSERT INTO target (cols) SELECT cols FROM source."""
        quoted_cols = quote_and_join(columns)
        return (
            f"INSERT INTO {self.qualify(table, schema)} ({quoted_cols}) "
            f"SELECT {quoted_cols} FROM {self.quote(source)}"
        )

    def build_on_conflict_do_nothing(self, conflict_columns: Sequence[str]) -> str:
        return f" ON CONFLICT ({quote_and_join(conflict_columns)}) DO NOTHING"

    def build_on_conflict_do_update(
        self,
        conflict_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> str:
        """
        Build the ON CONFLICT ... DO UPDATE suffix.

        Args:
            conflict_columns: Columns for conflict detection
            update_columns: Columns refreshed from EXCLUDED on conflict

        Returns:
            Clause with a leading space, ready to append to an INSERT
        """
        update_set = ", ".join(
            f"{self.quote(col)} = EXCLUDED.{self.quote(col)}" for col in update_columns
        )
        return (
            f" ON CONFLICT ({quote_and_join(conflict_columns)}) "
            f"DO UPDATE SET {update_set}"
        )
