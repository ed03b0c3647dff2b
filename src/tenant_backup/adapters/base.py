"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that the backup engine talks to.
All methods are ``async def`` -- the library is async-first.

Besides dict-based CRUD, the protocol exposes an explicit transaction
(``begin`` / ``commit`` / ``rollback``).  Between ``begin()`` and
``commit()``/``rollback()`` every call runs on the same connection, so a
restore is all-or-nothing.

Usage:
    from tenant_backup.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        await client.begin()
        try:
            await client.insert("client", {"id": "c1", "company_id": "t1"})
            await client.commit()
        except Exception:
            await client.rollback()
            raise
"""

from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    Filter dicts are AND-ed equality matches.  A ``None`` filter value
    matches ``IS NULL``.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names, or ``"*"``.
            filters: Optional dict of field=value filters (all must match via AND).
            order_by: Optional column name to sort by.

        Returns:
            List of dicts, one per row.  Empty list if no matches.

        Example:
            rows = await client.select(
                "invoice",
                "*",
                filters={"company_id": "t1", "deleted_at": None},
            )
        """
        ...

    async def select_children(
        self,
        table: str,
        fk_column: str,
        parent_table: str,
        parent_filters: dict[str, Any],
        columns: str = "*",
        parent_pk: str = "id",
    ) -> list[dict]:
        """Select rows of a child table reached through its parent.

        Equivalent to ``SELECT c.<columns> FROM table c JOIN parent_table p
        ON c.fk_column = p.id WHERE p.<filters>``.

        Args:
            table: Child table name.
            fk_column: Column in the child table referencing the parent id.
            parent_table: Parent table name.
            parent_filters: Filters applied to the parent row.
            columns: Child columns to return, or ``"*"``.
            parent_pk: Primary key column of the parent table.

        Returns:
            List of child row dicts.

        Example:
            lines = await client.select_children(
                "invoice_line", "invoice_id", "invoice", {"company_id": "t1"}
            )
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert row into table and return the created row.

        Raises:
            Exception: If duplicate key or constraint violation.
        """
        ...

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update rows in table and return the first updated row.

        Raises:
            Exception: If no rows match filters.
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows from table."""
        ...

    async def delete_children(
        self,
        table: str,
        fk_column: str,
        parent_table: str,
        parent_filters: dict[str, Any],
        parent_pk: str = "id",
    ) -> None:
        """Delete child rows whose parent matches ``parent_filters``."""
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a raw SQL statement.

        Args:
            sql: Raw SQL statement to execute.
            params: Optional dict of named parameters for the SQL statement.
        """
        ...

    async def begin(self) -> None:
        """Open a transaction; subsequent calls run inside it.

        Raises:
            RuntimeError: If a transaction is already open.
        """
        ...

    async def commit(self) -> None:
        """Commit the open transaction."""
        ...

    async def rollback(self) -> None:
        """Roll back the open transaction.  No-op when none is open."""
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...
