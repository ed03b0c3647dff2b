"""Engine-level backup/restore operations.

``BackupService`` is what a job worker calls: it binds an adapter, a
catalog, a blob store and a purge collaborator, and composes the purge
and restore phases into one progress range.

Usage:
    from tenant_backup.backup.service import BackupService

    service = BackupService(adapter, blob_store=store)
    archive = await service.generate_backup("c1", {"name": "Acme SRL", "cui": "RO123"})
    counts = await service.restore_backup("c2", archive, purge_existing=True)
"""

from collections.abc import Awaitable, Callable
import logging

from tenant_backup.adapters.base import DatabaseClient
from tenant_backup.backup.archive import open_archive
from tenant_backup.backup.backup_restore import (
    RestoreSummary,
    backup_database,
    check_manifest,
    restore_database,
)
from tenant_backup.backup.catalog import INVOICING_SCHEMA
from tenant_backup.backup.models import BackupSchema
from tenant_backup.backup.progress import ProgressCallback, report_progress, scale_progress
from tenant_backup.backup.purge import purge_tenant
from tenant_backup.storage.base import BlobStore

logger = logging.getLogger(__name__)

Purger = Callable[[DatabaseClient, BackupSchema, str], Awaitable[None]]

# Purge occupies 0-10%, the restore itself 10-100%
PURGE_PROGRESS = 5
RESTORE_PROGRESS_START = 10


class BackupService:
    """Backup and restore for one database and blob store.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        schema: Backup catalog (default: the invoicing catalog).
        blob_store: Store for row-owned files.  Without one, files are
            neither exported nor restored.
        purger: Deletes a tenant's rows before a replacing restore.
    """

    def __init__(
        self,
        adapter: DatabaseClient,
        schema: BackupSchema = INVOICING_SCHEMA,
        blob_store: BlobStore | None = None,
        purger: Purger = purge_tenant,
    ) -> None:
        self.adapter = adapter
        self.schema = schema
        self.blob_store = blob_store
        self.purger = purger

    async def generate_backup(
        self,
        tenant_id: str,
        tenant_info: dict[str, str] | None = None,
        include_files: bool = True,
        progress: ProgressCallback | None = None,
        include_soft_deleted: bool = True,
    ) -> bytes:
        return await backup_database(
            self.adapter,
            self.schema,
            tenant_id,
            tenant_info,
            blob_store=self.blob_store,
            include_files=include_files,
            include_soft_deleted=include_soft_deleted,
            progress=progress,
        )

    async def restore_backup(
        self,
        tenant_id: str,
        archive_bytes: bytes,
        purge_existing: bool = False,
        include_files: bool = True,
        progress: ProgressCallback | None = None,
        verify_checksum: bool = False,
    ) -> dict[str, int]:
        """Restore an archive into ``tenant_id``.

        The manifest is checked before anything is written.  With
        ``purge_existing`` the tenant's current rows are deleted inside the
        restore transaction, so a failed restore leaves them in place.
        ``verify_checksum`` refuses archives whose contents do not match the
        manifest checksum.

        Returns:
            Inserted row count per table.

        Raises:
            ArchiveFormatError: If the archive or its manifest is unreadable.
            IncompatibleVersionError: If the archive format is too new.
            TransactionFailure: If the purge or restore failed and was
                rolled back.
        """
        summary = await self.restore_backup_detailed(
            tenant_id, archive_bytes, purge_existing, include_files, progress, verify_checksum
        )
        return summary.entity_counts

    async def restore_backup_detailed(
        self,
        tenant_id: str,
        archive_bytes: bytes,
        purge_existing: bool = False,
        include_files: bool = True,
        progress: ProgressCallback | None = None,
        verify_checksum: bool = False,
    ) -> RestoreSummary:
        """Like ``restore_backup`` but returns the full ``RestoreSummary``."""
        with open_archive(archive_bytes) as reader:
            check_manifest(reader, verify_checksum)

        async def purge() -> None:
            report_progress(progress, PURGE_PROGRESS, "Purging existing data")
            await self.purger(self.adapter, self.schema, tenant_id)

        summary = await restore_database(
            self.adapter,
            self.schema,
            archive_bytes,
            tenant_id,
            blob_store=self.blob_store,
            include_files=include_files,
            progress=scale_progress(progress, RESTORE_PROGRESS_START, 100),
            before_import=purge if purge_existing else None,
            verify_checksum=verify_checksum,
        )
        if summary.file_warnings:
            logger.warning(
                f"Restore into tenant {tenant_id} skipped {len(summary.file_warnings)} files"
            )
        return summary
