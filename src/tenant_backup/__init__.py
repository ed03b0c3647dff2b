"""tenant-backup: Company backup and restore for a multi-tenant invoicing database.

Exports one company's rows and files to a self-describing ZIP archive and
restores such an archive into any company, remapping every id.

Usage:
    from tenant_backup import BackupService, INVOICING_SCHEMA, get_adapter
    from tenant_backup import backup_database, restore_database, validate_backup
    from tenant_backup import BackupSchema, TableDef, ForeignKey, FileSlot
    from tenant_backup import load_backup_config, LocalBlobStore
"""

__version__ = "0.1.0"

# Adapters
from tenant_backup.adapters.base import DatabaseClient
from tenant_backup.adapters.postgres import AsyncPostgresAdapter

# Backup
from tenant_backup.backup import (
    INVOICING_SCHEMA,
    BackupError,
    BackupManifest,
    BackupSchema,
    BackupService,
    FileSlot,
    ForeignKey,
    RestoreSummary,
    TableDef,
    backup_database,
    restore_database,
    validate_backup,
)

# Config
from tenant_backup.config.loader import load_backup_config
from tenant_backup.config.models import BackupConfig, DatabaseProfile

# Factory
from tenant_backup.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    get_adapter,
    get_blob_store,
    resolve_url,
)

# Storage
from tenant_backup.storage.base import BlobStore
from tenant_backup.storage.local import LocalBlobStore

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncPostgresAdapter",
    # Backup
    "BackupSchema",
    "TableDef",
    "ForeignKey",
    "FileSlot",
    "INVOICING_SCHEMA",
    "BackupManifest",
    "BackupService",
    "RestoreSummary",
    "BackupError",
    "backup_database",
    "restore_database",
    "validate_backup",
    # Config
    "load_backup_config",
    "BackupConfig",
    "DatabaseProfile",
    # Factory
    "get_adapter",
    "get_blob_store",
    "connect_and_validate",
    "ProfileNotFoundError",
    "resolve_url",
    # Storage
    "BlobStore",
    "LocalBlobStore",
]
