"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async PostgreSQL
adapter used by the backup engine.

Usage:
    from tenant_backup.adapters import DatabaseClient, AsyncPostgresAdapter
"""

from tenant_backup.adapters.base import DatabaseClient
from tenant_backup.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DatabaseClient",
    "AsyncPostgresAdapter",
]
