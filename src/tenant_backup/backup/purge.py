"""Delete every row a tenant owns, driven by BackupSchema.

The purge walks the catalog in reverse import order, so rows are deleted
before the rows they reference.  Child tables are deleted through their
parent's tenant scope, and self references are cleared first so a table
can be emptied in one statement.  The tenant record itself is not touched.

``purge_tenant`` does not open a transaction: run it inside the caller's
(``BackupService.restore_backup`` runs it inside the restore transaction).

Usage:
    from tenant_backup.backup.purge import purge_tenant

    await adapter.begin()
    await purge_tenant(adapter, INVOICING_SCHEMA, "c1")
    await adapter.commit()
"""

import logging

from tenant_backup.adapters.base import DatabaseClient
from tenant_backup.backup.models import BackupSchema

logger = logging.getLogger(__name__)


async def purge_tenant(
    adapter: DatabaseClient,
    schema: BackupSchema,
    tenant_id: str,
) -> None:
    """Delete all rows of ``tenant_id`` from every catalog table.

    Idempotent: purging an empty tenant is a no-op.
    """
    logger.info(f"Purging data of tenant {tenant_id}")

    # Clear self references so rows of one table can go in any order
    for table_def in schema.tables:
        if table_def.self_ref is None or table_def.parent is not None:
            continue
        referencing = await adapter.select(
            table_def.name,
            table_def.pk,
            filters={table_def.tenant_field: tenant_id},
        )
        if referencing:
            await adapter.update(
                table_def.name,
                data={table_def.self_ref: None},
                filters={table_def.tenant_field: tenant_id},
            )

    for table_def in reversed(schema.import_order()):
        if table_def.parent is None:
            await adapter.delete(table_def.name, filters={table_def.tenant_field: tenant_id})
            continue

        parent_def = schema.get(table_def.parent.table)
        await adapter.delete_children(
            table_def.name,
            table_def.parent.field,
            parent_def.name,
            {parent_def.tenant_field: tenant_id},
            parent_pk=parent_def.pk,
        )

    logger.info(f"Purge of tenant {tenant_id} completed")
