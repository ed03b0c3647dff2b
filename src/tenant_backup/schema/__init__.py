"""Catalog drift check against a live database.

Usage:
    from tenant_backup.schema import SchemaIntrospector, catalog_columns, validate_schema
"""

from tenant_backup.schema.comparator import catalog_columns, validate_schema
from tenant_backup.schema.introspector import SchemaIntrospector
from tenant_backup.schema.models import (
    ColumnDiff,
    ConnectionResult,
    SchemaValidationResult,
)

__all__ = [
    "catalog_columns",
    "validate_schema",
    "SchemaIntrospector",
    "SchemaValidationResult",
    "ColumnDiff",
    "ConnectionResult",
]
