"""PostgreSQL column introspection via information_schema.

Uses psycopg (v3) async connections.  Only table and column names are
read; that is all the catalog drift check needs.
"""

import psycopg


class SchemaIntrospector:
    """Reads table and column names from a live PostgreSQL database.

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            columns = await introspector.get_column_names()
    """

    # Tables to exclude from introspection (system tables)
    DEFAULT_EXCLUDED_TABLES = {
        "doctrine_migration_versions",
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    def __init__(
        self,
        database_url: str,
        excluded_tables: set[str] | None = None,
        connect_timeout: int = 10,
    ):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL (``postgresql://`` scheme)
            excluded_tables: Tables to skip (default: DEFAULT_EXCLUDED_TABLES)
            connect_timeout: Connection timeout in seconds
        """
        self._database_url = database_url
        self._excluded_tables = (
            self.DEFAULT_EXCLUDED_TABLES if excluded_tables is None else excluded_tables
        )
        self._connect_timeout = connect_timeout
        self._conn: psycopg.AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Open the connection."""
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def test_connection(self) -> bool:
        """Run ``SELECT 1``.

        Raises:
            ConnectionError: If the query fails.
        """
        self._require_connection()
        try:
            async with self._conn.cursor() as cur:
                await cur.execute("SELECT 1")
                row = await cur.fetchone()
                return row is not None and row[0] == 1
        except psycopg.Error as e:
            raise ConnectionError(f"Connection test failed: {e}") from e

    async def get_column_names(self, schema_name: str = "public") -> dict[str, set[str]]:
        """Get column names for all tables.

        Args:
            schema_name: PostgreSQL schema to query (default: public)

        Returns:
            Dict mapping table name to set of column names
        """
        self._require_connection()

        query = """
            SELECT c.table_name, c.column_name
            FROM information_schema.columns c
            JOIN information_schema.tables t
              ON t.table_schema = c.table_schema
             AND t.table_name = c.table_name
            WHERE c.table_schema = %s
              AND t.table_type = 'BASE TABLE'
        """
        result: dict[str, set[str]] = {}
        async with self._conn.cursor() as cur:
            await cur.execute(query, (schema_name,))
            for table_name, column_name in await cur.fetchall():
                if table_name in self._excluded_tables:
                    continue
                result.setdefault(table_name, set()).add(column_name)

        return result

    def _require_connection(self) -> None:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")
