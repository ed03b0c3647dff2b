"""Backup schema models for a declarative, tenant-scoped table graph.

Projects declare their tables, how each one is scoped to a tenant, and
which columns reference other tables.  The backup/restore engine derives
the export queries, the FK-safe insertion order, id remapping, user-audit
nulling and binary encoding from this description alone.

Usage:
    from tenant_backup.backup.models import BackupSchema, TableDef, ForeignKey

    schema = BackupSchema(tables=[
        TableDef(name="authors"),
        TableDef(
            name="books",
            refs=[ForeignKey(table="authors", field="author_id")],
            self_ref="sequel_of_id",
        ),
        TableDef(
            name="chapters",
            tenant_field=None,
            parent=ForeignKey(table="books", field="book_id"),
            binary_fields=["scan"],
        ),
    ])

    schema.import_order()   # ["authors", "books", "chapters"]
"""

from enum import Enum

from pydantic import BaseModel, Field, model_validator

from tenant_backup.backup.errors import CatalogError

BASE64_SUFFIX = "_base64"


class ColumnKind(str, Enum):
    """How the engine treats a column on export and import."""

    PRIMARY_KEY = "primary_key"
    TENANT = "tenant"
    FOREIGN_KEY = "foreign_key"
    SELF_REFERENCE = "self_reference"
    USER_AUDIT = "user_audit"
    UNIQUE = "unique"
    TOKEN = "token"
    BINARY = "binary"
    SCALAR = "scalar"


class ForeignKey(BaseModel):
    """Foreign key reference to another table in the catalog."""

    table: str          # referenced table name
    field: str          # FK column in this table


class FileSlot(BaseModel):
    """A binary artifact owned by a row, stored outside the database.

    ``path_field`` holds the artifact's storage key.  Inside the archive the
    file lives at ``files/<category>/<original owner id>/<name>`` where
    ``name`` is ``archive_name`` or, when that is unset, the row's
    ``name_field`` value.  On restore the file is written to
    ``storage_template`` formatted with ``tenant_id``, ``id`` (the new owner
    id) and ``filename``.
    """

    path_field: str
    category: str
    storage_template: str
    archive_name: str | None = None
    name_field: str | None = None

    @model_validator(mode="after")
    def _check_name_source(self) -> "FileSlot":
        if not self.archive_name and not self.name_field:
            raise ValueError("FileSlot needs either archive_name or name_field")
        return self

    def columns(self) -> list[str]:
        """Row columns needed to locate this artifact."""
        cols = [self.path_field]
        if self.name_field:
            cols.append(self.name_field)
        return cols

    def file_name(self, row: dict) -> str | None:
        """Name of the file inside the archive for ``row``."""
        if self.archive_name:
            return self.archive_name
        value = row.get(self.name_field)
        return _safe_name(str(value)) if value else None

    def archive_path(self, owner_id: str, filename: str) -> str:
        return f"files/{self.category}/{owner_id}/{filename}"

    def storage_path(self, tenant_id: str, owner_id: str, filename: str) -> str:
        return self.storage_template.format(
            tenant_id=tenant_id, id=owner_id, filename=filename
        )


class TableDef(BaseModel):
    """Definition of a table for backup/restore operations.

    A table is *tenant-scoped* when it has no ``parent``: it is exported
    with ``WHERE <tenant_field> = :tenant``.  A *child* table declares the
    one ``parent`` it is reached through and is exported with a join on
    that parent's tenant column.  A child may still carry a tenant column
    of its own; it is overwritten on restore when present in the row.
    """

    name: str                                       # table name
    pk: str = "id"                                  # primary key column
    tenant_field: str | None = "company_id"         # tenant ownership column
    parent: ForeignKey | None = None                # scope parent for child tables
    refs: list[ForeignKey] = Field(default_factory=list)  # FKs remapped (null if ref missing)
    self_ref: str | None = None                     # FK into this same table, fixed in a second pass
    user_fields: list[str] = Field(default_factory=list)  # user-audit FKs, always nulled
    unique_fields: list[str] = Field(default_factory=list)  # globally unique values, nulled on import
    token_fields: list[str] = Field(default_factory=list)  # secret tokens, regenerated on import
    binary_fields: list[str] = Field(default_factory=list)  # base64-encoded in the archive
    soft_delete_field: str | None = None            # e.g. "deleted_at"
    files: list[FileSlot] = Field(default_factory=list)

    @property
    def is_child(self) -> bool:
        return self.parent is not None

    @property
    def foreign_keys(self) -> list[ForeignKey]:
        """Parent link plus every remapped ref, excluding the self reference."""
        fks = [self.parent] if self.parent is not None else []
        return fks + list(self.refs)

    def column_kind(self, column: str) -> ColumnKind:
        """Classify ``column`` of this table."""
        if column == self.pk:
            return ColumnKind.PRIMARY_KEY
        if column == self.tenant_field:
            return ColumnKind.TENANT
        if column == self.self_ref:
            return ColumnKind.SELF_REFERENCE
        if any(fk.field == column for fk in self.foreign_keys):
            return ColumnKind.FOREIGN_KEY
        if column in self.user_fields:
            return ColumnKind.USER_AUDIT
        if column in self.unique_fields:
            return ColumnKind.UNIQUE
        if column in self.token_fields:
            return ColumnKind.TOKEN
        if column in self.binary_fields:
            return ColumnKind.BINARY
        return ColumnKind.SCALAR

    def dependencies(self) -> set[str]:
        """Tables this one must be inserted after."""
        return {fk.table for fk in self.foreign_keys if fk.table != self.name}


class BackupSchema(BaseModel):
    """Declarative backup catalog.

    ``user_fields`` are user-audit columns applied to every table on top of
    each table's own list.  Table order only matters as a tie-breaker:
    ``import_order()`` is derived from the FK graph.
    """

    tables: list[TableDef]
    user_fields: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_catalog(self) -> "BackupSchema":
        names = [t.name for t in self.tables]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise CatalogError(f"Duplicate tables in catalog: {', '.join(duplicates)}")

        by_name = {t.name: t for t in self.tables}
        for table in self.tables:
            if table.parent is None and table.tenant_field is None:
                raise CatalogError(
                    f"{table.name}: tenant-scoped tables need a tenant_field"
                )
            if table.parent is not None:
                parent = by_name.get(table.parent.table)
                if parent is None:
                    raise CatalogError(
                        f"{table.name}: parent table '{table.parent.table}' not in catalog"
                    )
                if parent.is_child:
                    raise CatalogError(
                        f"{table.name}: parent '{parent.name}' must be tenant-scoped"
                    )
            if table.self_ref and any(fk.field == table.self_ref for fk in table.foreign_keys):
                raise CatalogError(
                    f"{table.name}: self_ref '{table.self_ref}' is also declared as a ref"
                )

        if self.user_fields:
            self.tables = [
                t.model_copy(
                    update={
                        "user_fields": list(
                            dict.fromkeys([*t.user_fields, *self.user_fields])
                        )
                    }
                )
                for t in self.tables
            ]

        # Fail early on FK cycles
        self.import_order()
        return self

    def get(self, name: str) -> TableDef | None:
        """Find a TableDef by name."""
        for t in self.tables:
            if t.name == name:
                return t
        return None

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def export_order(self) -> list[TableDef]:
        """Tenant-scoped tables first, then child tables, in declaration order."""
        return [t for t in self.tables if not t.is_child] + [
            t for t in self.tables if t.is_child
        ]

    def import_order(self) -> list[TableDef]:
        """Topological order of the FK graph: referenced tables first.

        Self references are not edges (they are fixed up after the insert
        pass) and refs to tables outside the catalog are ignored.  Ties are
        broken by declaration order so the result is deterministic.

        Raises:
            CatalogError: If the FK graph has a cycle.
        """
        by_name = {t.name: t for t in self.tables}
        ordered: list[TableDef] = []
        visited: set[str] = set()
        visiting: list[str] = []  # current DFS path, for cycle reporting

        def visit(name: str) -> None:
            if name in visited:
                return
            if name in visiting:
                cycle = visiting[visiting.index(name):] + [name]
                raise CatalogError(f"Foreign key cycle: {' -> '.join(cycle)}")
            visiting.append(name)
            table = by_name[name]
            for dep in sorted(
                table.dependencies() & by_name.keys(), key=self.table_names.index
            ):
                visit(dep)
            visiting.pop()
            visited.add(name)
            ordered.append(table)

        for table in self.tables:
            visit(table.name)

        return ordered


def _safe_name(name: str) -> str | None:
    """Strip directory components so a file name cannot escape its folder."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    return base if base not in ("", ".", "..") else None
