"""Tenant backup and restore with a declarative table catalog.

Provides ``BackupSchema``-driven backup, restore, validation and purge.
Table scope, FK relationships, user-audit and binary columns are declared
in the catalog; the invoicing application's catalog is ``INVOICING_SCHEMA``.

Usage:
    from tenant_backup.backup import BackupSchema, TableDef, ForeignKey
    from tenant_backup.backup import backup_database, restore_database, validate_backup
    from tenant_backup.backup import BackupService, INVOICING_SCHEMA
"""

from tenant_backup.backup.backup_restore import (
    IdRemap,
    RestoreState,
    RestoreSummary,
    backup_database,
    restore_database,
    validate_backup,
)
from tenant_backup.backup.catalog import INVOICING_SCHEMA
from tenant_backup.backup.errors import (
    ArchiveFormatError,
    BackupError,
    CatalogError,
    FileRestoreWarning,
    IncompatibleVersionError,
    TransactionFailure,
)
from tenant_backup.backup.manifest import BackupManifest
from tenant_backup.backup.models import BackupSchema, ColumnKind, FileSlot, ForeignKey, TableDef
from tenant_backup.backup.progress import (
    ProgressCallback,
    StepProgress,
    report_progress,
    scale_progress,
)
from tenant_backup.backup.purge import purge_tenant
from tenant_backup.backup.service import BackupService

__all__ = [
    # Catalog
    "BackupSchema",
    "TableDef",
    "ForeignKey",
    "FileSlot",
    "ColumnKind",
    "INVOICING_SCHEMA",
    # Archive
    "BackupManifest",
    # Operations
    "backup_database",
    "restore_database",
    "validate_backup",
    "purge_tenant",
    "BackupService",
    "IdRemap",
    "RestoreState",
    "RestoreSummary",
    # Progress
    "ProgressCallback",
    "StepProgress",
    "report_progress",
    "scale_progress",
    # Errors
    "BackupError",
    "CatalogError",
    "ArchiveFormatError",
    "IncompatibleVersionError",
    "TransactionFailure",
    "FileRestoreWarning",
]
