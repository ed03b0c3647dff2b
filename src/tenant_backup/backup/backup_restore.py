"""Tenant backup and restore driven by BackupSchema.

Backups are ZIP archives (see ``tenant_backup.backup.archive``).  Which
tables are exported, how they are scoped to the tenant, which columns are
foreign keys, user-audit references or binary content, and the order rows
are inserted back are all driven by a caller-provided ``BackupSchema``.

A restore never reuses identifiers: every row gets a fresh primary key and
every declared foreign key is rewritten through an id remap table built
during the insert pass.  The whole relational part of a restore runs in a
single transaction; binary files are restored on a best-effort basis.

Usage:
    from tenant_backup.backup.backup_restore import (
        backup_database,
        restore_database,
        validate_backup,
    )
    from tenant_backup.backup.catalog import INVOICING_SCHEMA

    # Backup
    archive = await backup_database(
        adapter, INVOICING_SCHEMA, tenant_id="c1",
        tenant_info={"name": "Acme SRL", "cui": "RO123"},
        blob_store=store,
    )

    # Restore into another tenant
    summary = await restore_database(
        adapter, INVOICING_SCHEMA, archive, tenant_id="c2", blob_store=store
    )

    # Validate (no database I/O)
    report = validate_backup(archive, INVOICING_SCHEMA)
"""

import base64
from collections.abc import Awaitable, Callable
from enum import Enum
import logging
import secrets
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from tenant_backup.adapters.base import DatabaseClient
from tenant_backup.backup.archive import ArchiveReader, ArchiveWriter, open_archive, scratch_file
from tenant_backup.backup.errors import (
    ArchiveFormatError,
    FileRestoreWarning,
    IncompatibleVersionError,
    TransactionFailure,
)
from tenant_backup.backup.manifest import VERSION, BackupManifest
from tenant_backup.backup.models import BASE64_SUFFIX, BackupSchema, ColumnKind, TableDef
from tenant_backup.backup.progress import ProgressCallback, StepProgress
from tenant_backup.storage.base import BlobStore

logger = logging.getLogger(__name__)


class RestoreState(str, Enum):
    """Phases of a restore run."""

    VALIDATING = "validating"
    IMPORTING = "importing"
    POST_FIXUP = "post_fixup"
    RESTORING_FILES = "restoring_files"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class RestoreSummary(BaseModel):
    """Outcome of a committed restore."""

    entity_counts: dict[str, int] = Field(default_factory=dict)
    files_restored: int = 0
    file_warnings: list[FileRestoreWarning] = Field(default_factory=list)
    state: RestoreState = RestoreState.VALIDATING

    @property
    def total_entity_count(self) -> int:
        return sum(self.entity_counts.values())


class IdRemap:
    """Per-run mapping ``table -> {old id -> new id}``."""

    def __init__(self) -> None:
        self._maps: dict[str, dict[Any, str]] = {}

    def add(self, table: str, old_id: Any, new_id: str) -> None:
        self._maps.setdefault(table, {})[old_id] = new_id

    def resolve(self, table: str, old_id: Any) -> str | None:
        """New id for ``old_id``, or None when it was not restored."""
        if old_id is None:
            return None
        return self._maps.get(table, {}).get(old_id)

    def table(self, table: str) -> dict[Any, str]:
        return dict(self._maps.get(table, {}))

    def __len__(self) -> int:
        return sum(len(m) for m in self._maps.values())


def _new_id() -> str:
    return str(uuid4())


# ============================================================================
# Backup
# ============================================================================


async def backup_database(
    adapter: DatabaseClient,
    schema: BackupSchema,
    tenant_id: str,
    tenant_info: dict[str, str] | None = None,
    blob_store: BlobStore | None = None,
    include_files: bool = True,
    include_soft_deleted: bool = True,
    progress: ProgressCallback | None = None,
) -> bytes:
    """Export one tenant's rows and files to a ZIP archive.

    Tenant-scoped tables are selected by their tenant column, child tables
    through a join on their parent's tenant column.  Binary columns are
    written as ``<column>_base64``.  When ``include_files`` is set, every
    file referenced by a ``FileSlot`` is copied from ``blob_store`` into the
    archive; unreadable files are logged and skipped.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        schema: Backup catalog describing tables and FK relationships.
        tenant_id: Tenant whose data is exported.
        tenant_info: Display metadata for the manifest: ``name`` and ``cui``.
        blob_store: Store holding the files referenced by rows.  Required
            for ``include_files``.
        include_files: Copy binary artifacts into ``files/``.
        include_soft_deleted: Export rows whose soft-delete column is set.
        progress: Optional ``(percent, step)`` callback.

    Returns:
        The archive bytes.

    Raises:
        ArchiveFormatError: If the archive cannot be created or finalized.

    Example:
        archive = await backup_database(
            adapter, schema, "c1", {"name": "Acme SRL", "cui": "RO123"},
            blob_store=store,
        )
    """
    tenant_info = tenant_info or {}
    if include_files and blob_store is None:
        logger.warning("No blob store configured; exporting without files")
        include_files = False

    tables = schema.export_order()
    steps = StepProgress(progress, len(tables) + (1 if include_files else 0))
    entity_counts: dict[str, int] = {}
    file_owners: dict[str, list[dict]] = {}

    logger.info(f"Backup of tenant {tenant_id} started ({len(tables)} tables)")

    with scratch_file() as path:
        writer = ArchiveWriter(path)
        try:
            for table_def in tables:
                steps.step(f"Exporting {table_def.name}")
                rows = await _fetch_rows(
                    adapter, schema, table_def, tenant_id, include_soft_deleted
                )
                writer.add_table(table_def.name, [_encode_row(table_def, r) for r in rows])
                entity_counts[table_def.name] = len(rows)
                if table_def.files:
                    file_owners[table_def.name] = rows

            if include_files:
                steps.step("Exporting files")
                added = await _export_files(writer, blob_store, schema, file_owners)
                logger.info(f"Added {added} files to backup")

            checksum = writer.seal()
        finally:
            writer.close()

        manifest = BackupManifest.create(
            company_name=tenant_info.get("name", ""),
            company_cui=tenant_info.get("cui", ""),
            entity_counts=entity_counts,
            checksum=checksum,
            includes_files=include_files,
        )
        writer.add_manifest(manifest)
        archive = path.read_bytes()

    logger.info(
        f"Backup of tenant {tenant_id} complete: "
        f"{manifest.total_entity_count} rows, {len(archive)} bytes"
    )
    steps.complete()
    return archive


async def _fetch_rows(
    adapter: DatabaseClient,
    schema: BackupSchema,
    table_def: TableDef,
    tenant_id: str,
    include_soft_deleted: bool,
) -> list[dict]:
    """Select the tenant's rows of one table, ordered by primary key."""
    if table_def.parent is None:
        filters: dict[str, Any] = {table_def.tenant_field: tenant_id}
        if not include_soft_deleted and table_def.soft_delete_field:
            filters[table_def.soft_delete_field] = None
        rows = await adapter.select(table_def.name, "*", filters=filters)
    else:
        parent_def = schema.get(table_def.parent.table)
        parent_filters: dict[str, Any] = {parent_def.tenant_field: tenant_id}
        # Children of hidden parents are hidden too
        if not include_soft_deleted and parent_def.soft_delete_field:
            parent_filters[parent_def.soft_delete_field] = None
        rows = await adapter.select_children(
            table_def.name,
            table_def.parent.field,
            parent_def.name,
            parent_filters,
            parent_pk=parent_def.pk,
        )
        if not include_soft_deleted and table_def.soft_delete_field:
            rows = [r for r in rows if r.get(table_def.soft_delete_field) is None]

    return sorted(rows, key=lambda r: str(r.get(table_def.pk)))


def _encode_row(table_def: TableDef, row: dict) -> dict:
    """Copy of ``row`` with binary columns replaced by base64 siblings."""
    encoded = dict(row)
    for field in table_def.binary_fields:
        if field not in encoded:
            continue
        value = encoded.pop(field)
        encoded[field + BASE64_SUFFIX] = (
            base64.b64encode(_to_bytes(value)).decode("ascii") if value is not None else None
        )
    return encoded


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


async def _export_files(
    writer: ArchiveWriter,
    blob_store: BlobStore,
    schema: BackupSchema,
    file_owners: dict[str, list[dict]],
) -> int:
    """Copy every file referenced by exported rows into the archive."""
    added = 0
    for table_name, rows in file_owners.items():
        table_def = schema.get(table_name)
        for row in rows:
            owner_id = row.get(table_def.pk)
            for slot in table_def.files:
                storage_path = row.get(slot.path_field)
                if not storage_path or owner_id is None:
                    continue
                filename = slot.file_name(row)
                if filename is None:
                    logger.warning(
                        f"Skipping {table_name} {owner_id} file {storage_path}: no usable file name"
                    )
                    continue
                try:
                    if not await blob_store.exists(storage_path):
                        logger.warning(f"Skipping missing file {storage_path} ({table_name} {owner_id})")
                        continue
                    data = await blob_store.read(storage_path)
                except Exception as e:
                    logger.warning(f"Skipping unreadable file {storage_path} ({table_name} {owner_id}): {e}")
                    continue
                writer.add_bytes(slot.archive_path(str(owner_id), filename), data)
                added += 1
    return added


# ============================================================================
# Restore
# ============================================================================


def check_manifest(reader: ArchiveReader, verify_checksum: bool = False) -> BackupManifest:
    """Read and validate the manifest of an opened archive.

    Raises:
        ArchiveFormatError: If the manifest is missing or invalid, or the
            checksum does not match when ``verify_checksum`` is set.
        IncompatibleVersionError: If the archive format is newer than
            this engine supports.
    """
    manifest = reader.manifest()
    if not manifest.is_compatible():
        raise IncompatibleVersionError(manifest.version, VERSION)
    if verify_checksum and not reader.verify_checksum(manifest.checksum):
        raise ArchiveFormatError("Backup checksum does not match archive contents")
    return manifest


async def restore_database(
    adapter: DatabaseClient,
    schema: BackupSchema,
    archive_bytes: bytes,
    tenant_id: str,
    blob_store: BlobStore | None = None,
    include_files: bool = True,
    progress: ProgressCallback | None = None,
    id_factory: Callable[[], str] | None = None,
    verify_checksum: bool = False,
    before_import: Callable[[], Awaitable[None]] | None = None,
) -> RestoreSummary:
    """Import an archive into ``tenant_id`` under new identifiers.

    Rows are inserted in ``schema.import_order()``.  For each row a new
    primary key is allocated, the tenant column is set to ``tenant_id``,
    declared foreign keys are rewritten through the id remap (null when the
    referenced row was not restored), user-audit columns are nulled and
    base64 siblings are decoded.  Self references are filled in by a second
    pass once every row exists.  Files are then written to ``blob_store``
    under paths built from the new ids, and their owner rows updated.

    Everything after manifest validation runs in one transaction on
    ``adapter``, including a cancelled run, which is rolled back before the
    cancellation propagates.  Existing tenant data is left untouched unless
    ``before_import`` removes it.  Unlike a separate purge followed by a
    restore, a purge passed as ``before_import`` shares the restore
    transaction, so a failed restore also undoes the purge (see
    ``BackupService.restore_backup``).

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        schema: Backup catalog describing tables and FK relationships.
        archive_bytes: Archive produced by ``backup_database``.
        tenant_id: Tenant that receives the data.
        blob_store: Target store for files.  Files are skipped without one.
        include_files: Restore files when the archive contains them.
        progress: Optional ``(percent, step)`` callback.
        id_factory: Returns a new primary key.  Defaults to a UUID4 string.
        verify_checksum: Refuse archives whose content checksum does not
            match the manifest.
        before_import: Awaited inside the transaction before the first
            insert.  Used to purge the tenant atomically with the restore.

    Returns:
        RestoreSummary with per-table inserted counts and file results.

    Raises:
        ArchiveFormatError: If the archive or its manifest is unreadable.
        IncompatibleVersionError: If the archive format is too new.
        TransactionFailure: If anything failed inside the transaction.  The
            transaction has been rolled back; the cause is chained.

    Example:
        summary = await restore_database(adapter, schema, archive, "c2")
        print(summary.entity_counts["invoice"])
    """
    new_id = id_factory or _new_id
    summary = RestoreSummary()

    with open_archive(archive_bytes) as reader:
        manifest = check_manifest(reader, verify_checksum)
        restore_files = include_files and manifest.includes_files
        if restore_files and blob_store is None:
            logger.warning("No blob store configured; restoring without files")
            restore_files = False

        tables = schema.import_order()
        steps = StepProgress(progress, len(tables) + 1 + (1 if restore_files else 0))
        remap = IdRemap()
        self_refs: dict[str, list[tuple[Any, Any]]] = {}
        file_owners: dict[str, list[tuple[dict, str]]] = {}
        current_table: str | None = None

        logger.info(
            f"Restore into tenant {tenant_id} started "
            f"(archive version {manifest.version}, {manifest.total_entity_count} rows)"
        )

        await adapter.begin()
        try:
            if before_import is not None:
                await before_import()

            for table_def in tables:
                current_table = table_def.name
                _enter(summary, RestoreState.IMPORTING, table_def.name)
                steps.step(f"Restoring {table_def.name}")

                rows = reader.read_table(table_def.name)
                if rows is None:
                    continue

                for row in rows:
                    record = _prepare_row(table_def, row, tenant_id, remap, new_id)
                    await adapter.insert(table_def.name, record)

                    old_id = row.get(table_def.pk)
                    if table_def.self_ref and row.get(table_def.self_ref) is not None:
                        self_refs.setdefault(table_def.name, []).append(
                            (old_id, row[table_def.self_ref])
                        )
                    if table_def.files and old_id is not None:
                        file_owners.setdefault(table_def.name, []).append(
                            (row, record[table_def.pk])
                        )

                summary.entity_counts[table_def.name] = len(rows)
            current_table = None

            _enter(summary, RestoreState.POST_FIXUP)
            steps.step("Fixing references")
            fixed = await _fix_self_references(adapter, schema, self_refs, remap)
            logger.debug(f"Fixed {fixed} self references")

            if restore_files:
                _enter(summary, RestoreState.RESTORING_FILES)
                steps.step("Restoring files")
                await _restore_files(
                    adapter, reader, blob_store, schema, file_owners, tenant_id, summary
                )

            await adapter.commit()
            _enter(summary, RestoreState.COMMITTED)
        except Exception as e:
            await adapter.rollback()
            failed_in = summary.state
            _enter(summary, RestoreState.ROLLED_BACK)
            location = f" while importing {current_table}" if current_table else ""
            logger.error(f"Restore into tenant {tenant_id} rolled back ({failed_in.value}){location}: {e}")
            raise TransactionFailure(
                f"Restore failed{location}: {e}", table=current_table
            ) from e
        except BaseException:
            # Cancellation and interpreter exit still end in a rollback
            await adapter.rollback()
            _enter(summary, RestoreState.ROLLED_BACK)
            logger.warning(f"Restore into tenant {tenant_id} interrupted and rolled back")
            raise

    logger.info(
        f"Restore into tenant {tenant_id} complete: {summary.total_entity_count} rows, "
        f"{summary.files_restored} files, {len(summary.file_warnings)} file warnings"
    )
    steps.complete()
    return summary


def _enter(summary: RestoreSummary, state: RestoreState, detail: str = "") -> None:
    summary.state = state
    logger.debug(f"Restore state: {state.value}{f' ({detail})' if detail else ''}")


def _prepare_row(
    table_def: TableDef,
    row: dict,
    tenant_id: str,
    remap: IdRemap,
    new_id: Callable[[], str],
) -> dict:
    """Build the row to insert: new pk, target tenant, remapped FKs, fresh tokens.

    Records ``old pk -> new pk`` in ``remap``.
    """
    record = dict(row)
    pk_value = new_id()
    old_id = record.get(table_def.pk)
    record[table_def.pk] = pk_value
    if old_id is not None:
        remap.add(table_def.name, old_id, pk_value)

    fk_tables = {fk.field: fk.table for fk in table_def.foreign_keys}
    for column in list(record):
        kind = table_def.column_kind(column)
        if kind is ColumnKind.TENANT:
            record[column] = tenant_id
        elif kind is ColumnKind.FOREIGN_KEY:
            record[column] = remap.resolve(fk_tables[column], record[column])
        elif kind in (ColumnKind.SELF_REFERENCE, ColumnKind.USER_AUDIT, ColumnKind.UNIQUE):
            record[column] = None
        elif kind is ColumnKind.TOKEN and record[column] is not None:
            record[column] = secrets.token_hex(32)

    for field in table_def.binary_fields:
        key = field + BASE64_SUFFIX
        if key in record:
            encoded = record.pop(key)
            record[field] = base64.b64decode(encoded) if encoded is not None else None

    return record


async def _fix_self_references(
    adapter: DatabaseClient,
    schema: BackupSchema,
    self_refs: dict[str, list[tuple[Any, Any]]],
    remap: IdRemap,
) -> int:
    """Point restored rows at the new ids of their self-referenced rows."""
    fixed = 0
    for table_name, pairs in self_refs.items():
        table_def = schema.get(table_name)
        for old_id, old_target in pairs:
            new_row_id = remap.resolve(table_name, old_id)
            new_target = remap.resolve(table_name, old_target)
            if new_row_id is None or new_target is None:
                continue
            await adapter.update(
                table_name,
                data={table_def.self_ref: new_target},
                filters={table_def.pk: new_row_id},
            )
            fixed += 1
    return fixed


async def _restore_files(
    adapter: DatabaseClient,
    reader: ArchiveReader,
    blob_store: BlobStore,
    schema: BackupSchema,
    file_owners: dict[str, list[tuple[dict, str]]],
    tenant_id: str,
    summary: RestoreSummary,
) -> None:
    """Write archived files under their new paths and update owner rows.

    A file that cannot be written is recorded as a ``FileRestoreWarning``
    and skipped.  Database errors propagate.
    """
    for table_name, owners in file_owners.items():
        table_def = schema.get(table_name)
        for row, new_owner_id in owners:
            old_owner_id = str(row[table_def.pk])
            for slot in table_def.files:
                filename = slot.file_name(row)
                if filename is None:
                    continue
                entry = slot.archive_path(old_owner_id, filename)
                data = reader.read_file(entry)
                if data is None:
                    continue

                storage_path = slot.storage_path(tenant_id, new_owner_id, filename)
                try:
                    await blob_store.write(storage_path, data)
                except Exception as e:
                    warning = FileRestoreWarning(
                        table=table_name,
                        owner_id=new_owner_id,
                        archive_path=entry,
                        error=str(e),
                    )
                    logger.warning(f"Could not restore {entry} to {storage_path}: {e}")
                    summary.file_warnings.append(warning)
                    continue

                await adapter.update(
                    table_name,
                    data={slot.path_field: storage_path},
                    filters={table_def.pk: new_owner_id},
                )
                summary.files_restored += 1


# ============================================================================
# Validation
# ============================================================================


def validate_backup(archive_bytes: bytes, schema: BackupSchema) -> dict:
    """Validate archive format and data integrity.

    Checks that the archive is a readable ZIP with a parsable, compatible
    manifest and that every ``data/<table>.json`` entry is a JSON array of
    objects carrying the table's primary key.  Count mismatches, tables
    unknown to ``schema``, orphaned child rows and checksum mismatches are
    reported as warnings.

    This function is **sync** -- it only reads the archive, no database I/O.

    Args:
        archive_bytes: Archive produced by ``backup_database``.
        schema: Backup catalog to validate against.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]),
        and ``warnings`` (list[str]).

    Example:
        report = validate_backup(archive, schema)
        if report["errors"]:
            raise ValueError("Backup is invalid")
    """
    errors: list[str] = []
    warnings: list[str] = []

    try:
        with open_archive(archive_bytes) as reader:
            _validate_archive(reader, schema, errors, warnings)
    except ArchiveFormatError as e:
        errors.append(str(e))

    return {"valid": not errors, "errors": errors, "warnings": warnings}


def _validate_archive(
    reader: ArchiveReader,
    schema: BackupSchema,
    errors: list[str],
    warnings: list[str],
) -> None:
    try:
        manifest = reader.manifest()
    except ArchiveFormatError as e:
        errors.append(str(e))
        return

    if not manifest.is_compatible():
        errors.append(
            f"Unsupported backup version '{manifest.version}' (supported <= '{VERSION}')"
        )

    known = set(schema.table_names)
    for table in reader.tables():
        if table not in known:
            warnings.append(f"Unknown table in backup: {table}")

    pk_values: dict[str, set] = {}
    table_rows: dict[str, list[dict]] = {}
    for table_def in schema.tables:
        try:
            rows = reader.read_table(table_def.name)
        except ArchiveFormatError as e:
            errors.append(str(e))
            continue

        expected = manifest.entity_counts.get(table_def.name)
        if rows is None:
            if expected:
                warnings.append(
                    f"{table_def.name}: manifest lists {expected} rows but data is missing"
                )
            continue

        pks = set()
        for index, row in enumerate(rows):
            value = row.get(table_def.pk)
            if value is None or value == "":
                errors.append(f"{table_def.name} row {index} missing '{table_def.pk}' field")
            else:
                pks.add(value)

        if expected is not None and expected != len(rows):
            warnings.append(
                f"{table_def.name}: manifest lists {expected} rows, archive has {len(rows)}"
            )
        pk_values[table_def.name] = pks
        table_rows[table_def.name] = rows

    # Child rows whose parent is not part of the backup
    for table_def in schema.tables:
        if table_def.parent is None or table_def.name not in table_rows:
            continue
        parent_pks = pk_values.get(table_def.parent.table, set())
        orphans = [
            row for row in table_rows[table_def.name]
            if row.get(table_def.parent.field) is not None
            and row[table_def.parent.field] not in parent_pks
        ]
        if orphans:
            warnings.append(
                f"{len(orphans)} orphaned {table_def.name} rows: "
                f"{table_def.parent.field} not in backup"
            )

    if manifest.checksum and not reader.verify_checksum(manifest.checksum):
        warnings.append("Checksum mismatch: archive contents differ from manifest")
