"""Catalog drift check using set operations.

Compares the columns the backup catalog relies on against the columns of
the live database.  Pure logic -- no I/O, no database connections.

Usage:
    from tenant_backup.backup.catalog import INVOICING_SCHEMA
    from tenant_backup.schema.comparator import catalog_columns, validate_schema
    from tenant_backup.schema.introspector import SchemaIntrospector

    async with SchemaIntrospector(database_url) as introspector:
        actual_columns = await introspector.get_column_names()

    result = validate_schema(actual_columns, catalog_columns(INVOICING_SCHEMA))
    if not result.valid:
        print(result.format_report())
"""

from tenant_backup.backup.models import BackupSchema
from tenant_backup.schema.models import ColumnDiff, SchemaValidationResult


def catalog_columns(schema: BackupSchema) -> dict[str, set[str]]:
    """Columns each catalog table must have for backup and restore to work.

    Covers primary keys, tenant columns of tenant-scoped tables, parent
    links, declared refs and self references, binary, soft-delete and
    file columns.  User-audit and child tenant columns are optional: they
    are only rewritten when present.

    Example:
        >>> from tenant_backup.backup.models import BackupSchema, TableDef
        >>> columns = catalog_columns(BackupSchema(tables=[TableDef(name="client")]))
        >>> sorted(columns["client"])
        ['company_id', 'id']
    """
    expected: dict[str, set[str]] = {}
    for table_def in schema.tables:
        columns = {table_def.pk}
        if table_def.parent is None:
            columns.add(table_def.tenant_field)
        columns.update(fk.field for fk in table_def.foreign_keys)
        if table_def.self_ref:
            columns.add(table_def.self_ref)
        if table_def.soft_delete_field:
            columns.add(table_def.soft_delete_field)
        columns.update(table_def.binary_fields)
        for slot in table_def.files:
            columns.update(slot.columns())
        expected[table_def.name] = columns
    return expected


def validate_schema(
    actual_columns: dict[str, set[str]],
    expected_columns: dict[str, set[str]],
) -> SchemaValidationResult:
    """Validate actual database schema against expected columns.

    Performs pure set operations to find:
    - Missing tables: Tables in *expected_columns* but not in *actual_columns*
    - Missing columns: Columns in *expected_columns* but not in the actual table
    - Extra tables: Tables in *actual_columns* but not in *expected_columns*
      (warning only -- does not affect ``valid`` status)

    Args:
        actual_columns: Dict mapping table name to set of column names,
            as returned by ``introspector.get_column_names()``.
        expected_columns: Dict mapping table name to set of expected column
            names, usually ``catalog_columns(schema)``.

    Returns:
        ``SchemaValidationResult`` with ``valid`` set when no table or column
        is missing.

    Examples:
        >>> result = validate_schema(
        ...     {"client": {"id"}},
        ...     {"client": {"id", "company_id"}},
        ... )
        >>> result.valid
        False
        >>> result.missing_columns[0].column
        'company_id'
    """
    actual_tables: set[str] = set(actual_columns.keys())
    expected_tables: set[str] = set(expected_columns.keys())

    missing_tables: list[str] = sorted(expected_tables - actual_tables)

    # Tables outside the catalog (warning only)
    extra_tables: list[str] = sorted(actual_tables - expected_tables)

    missing_columns: list[ColumnDiff] = []
    for table_name in sorted(expected_tables & actual_tables):
        missing_cols: set[str] = expected_columns[table_name] - actual_columns[table_name]

        for col_name in sorted(missing_cols):
            missing_columns.append(
                ColumnDiff(
                    table=table_name,
                    column=col_name,
                    message=f"Column '{col_name}' missing from table '{table_name}'",
                )
            )

    return SchemaValidationResult(
        valid=not missing_tables and not missing_columns,
        missing_tables=missing_tables,
        missing_columns=missing_columns,
        extra_tables=extra_tables,
    )
