"""Shared fixtures: in-memory database and blob store, sample catalog and data.

``FakeDatabase`` implements the ``DatabaseClient`` Protocol over plain
lists of dicts.  ``begin()`` snapshots every table and ``rollback()``
restores the snapshot, so transaction semantics can be asserted without
PostgreSQL.
"""

import copy
import io
import itertools
import zipfile
from typing import Any

import pytest

from tenant_backup.backup.manifest import BackupManifest
from tenant_backup.backup.models import BackupSchema, FileSlot, ForeignKey, TableDef


class FakeDatabase:
    """In-memory ``DatabaseClient``."""

    def __init__(self, tables: dict[str, list[dict]] | None = None) -> None:
        self.tables: dict[str, list[dict]] = copy.deepcopy(tables or {})
        self.fail_on_insert: str | None = None
        self.executed: list[tuple[str, dict | None]] = []
        self.closed = False
        self._snapshot: dict[str, list[dict]] | None = None

    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None

    @staticmethod
    def _matches(row: dict, filters: dict[str, Any] | None) -> bool:
        return all(row.get(k) == v for k, v in (filters or {}).items())

    @staticmethod
    def _project(row: dict, columns: str) -> dict:
        if columns.strip() == "*":
            return copy.deepcopy(row)
        return {c.strip(): copy.deepcopy(row.get(c.strip())) for c in columns.split(",")}

    def rows(self, table: str, **filters: Any) -> list[dict]:
        """Test helper: rows of ``table`` matching ``filters``."""
        return [r for r in self.tables.get(table, []) if self._matches(r, filters)]

    async def select(self, table, columns, filters=None, order_by=None):
        rows = [self._project(r, columns) for r in self.rows(table, **(filters or {}))]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by)))
        return rows

    async def select_children(
        self, table, fk_column, parent_table, parent_filters, columns="*", parent_pk="id"
    ):
        parent_ids = {p[parent_pk] for p in self.rows(parent_table, **parent_filters)}
        return [
            self._project(r, columns)
            for r in self.tables.get(table, [])
            if r.get(fk_column) in parent_ids
        ]

    async def insert(self, table, data):
        if table == self.fail_on_insert:
            raise RuntimeError(f"insert into {table} failed")
        row = copy.deepcopy(data)
        self.tables.setdefault(table, []).append(row)
        return copy.deepcopy(row)

    async def update(self, table, data, filters):
        matched = self.rows(table, **filters)
        if not matched:
            raise ValueError(f"No rows matched filters: {filters}")
        for row in matched:
            row.update(copy.deepcopy(data))
        return copy.deepcopy(matched[0])

    async def delete(self, table, filters):
        self.tables[table] = [
            r for r in self.tables.get(table, []) if not self._matches(r, filters)
        ]

    async def delete_children(
        self, table, fk_column, parent_table, parent_filters, parent_pk="id"
    ):
        parent_ids = {p[parent_pk] for p in self.rows(parent_table, **parent_filters)}
        self.tables[table] = [
            r for r in self.tables.get(table, []) if r.get(fk_column) not in parent_ids
        ]

    async def execute(self, sql, params=None):
        self.executed.append((sql, params))

    async def begin(self):
        if self._snapshot is not None:
            raise RuntimeError("A transaction is already open on this adapter")
        self._snapshot = copy.deepcopy(self.tables)

    async def commit(self):
        if self._snapshot is None:
            raise RuntimeError("No open transaction to commit")
        self._snapshot = None

    async def rollback(self):
        if self._snapshot is None:
            return
        self.tables, self._snapshot = self._snapshot, None

    async def close(self):
        self.closed = True


class MemoryBlobStore:
    """In-memory ``BlobStore``.  ``fail_writes`` makes every write raise."""

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self.fail_writes = False

    async def write(self, path, data):
        if self.fail_writes:
            raise OSError(f"disk full writing {path}")
        self.objects[path] = bytes(data)

    async def read(self, path):
        if path not in self.objects:
            raise FileNotFoundError(path)
        return self.objects[path]

    async def exists(self, path):
        return path in self.objects

    async def delete(self, path):
        self.objects.pop(path, None)


# ------------------------------------------------------------------
# Sample catalog and data
# ------------------------------------------------------------------


def _sample_schema() -> BackupSchema:
    """client -> invoice (self-referencing, with a PDF) -> invoice_line (binary)."""
    return BackupSchema(
        user_fields=["created_by_id"],
        tables=[
            TableDef(name="client"),
            TableDef(
                name="invoice",
                refs=[ForeignKey(table="client", field="client_id")],
                self_ref="parent_document_id",
                soft_delete_field="deleted_at",
                files=[
                    FileSlot(
                        path_field="pdf_path",
                        category="invoices",
                        archive_name="document.pdf",
                        storage_template="invoices/{tenant_id}/{id}.pdf",
                    )
                ],
            ),
            TableDef(
                name="invoice_line",
                parent=ForeignKey(table="invoice", field="invoice_id"),
                binary_fields=["scan"],
            ),
        ],
    )


SAMPLE_DATA: dict[str, list[dict]] = {
    "client": [
        {"id": "c1", "company_id": "t1", "name": "Acme SRL", "created_by_id": "u1"},
        {"id": "c2", "company_id": "t1", "name": "Beta SA", "created_by_id": None},
        {"id": "x1", "company_id": "t2", "name": "Other Co", "created_by_id": None},
    ],
    "invoice": [
        {
            "id": "i1", "company_id": "t1", "client_id": "c1", "number": "F-1",
            "parent_document_id": None, "deleted_at": None,
            "pdf_path": "invoices/t1/i1.pdf", "created_by_id": "u1",
        },
        {
            "id": "i2", "company_id": "t1", "client_id": "c2", "number": "F-2",
            "parent_document_id": "i1", "deleted_at": None,
            "pdf_path": None, "created_by_id": "u1",
        },
        {
            "id": "i3", "company_id": "t1", "client_id": "c1", "number": "F-3",
            "parent_document_id": None, "deleted_at": "2026-01-05T10:00:00",
            "pdf_path": None, "created_by_id": None,
        },
        {
            "id": "xi", "company_id": "t2", "client_id": "x1", "number": "X-1",
            "parent_document_id": None, "deleted_at": None,
            "pdf_path": None, "created_by_id": None,
        },
    ],
    "invoice_line": [
        {"id": "l1", "invoice_id": "i1", "description": "Widget", "scan": b"\x00\x01scan"},
        {"id": "l2", "invoice_id": "i2", "description": "Gadget", "scan": None},
        {"id": "l3", "invoice_id": "i3", "description": "Refund", "scan": None},
        {"id": "lx", "invoice_id": "xi", "description": "Other", "scan": None},
    ],
}

PDF_BYTES = b"%PDF-1.4 invoice i1"


@pytest.fixture
def schema() -> BackupSchema:
    return _sample_schema()


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase(SAMPLE_DATA)


@pytest.fixture
def store() -> MemoryBlobStore:
    return MemoryBlobStore({"invoices/t1/i1.pdf": PDF_BYTES})


@pytest.fixture
def id_factory():
    """Deterministic id allocator: new-1, new-2, ..."""
    counter = itertools.count(1)
    return lambda: f"new-{next(counter)}"


def _build_archive(entries: dict[str, str | bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def build_archive():
    """Build a ZIP archive from ``{entry name: content}``."""
    return _build_archive


@pytest.fixture
def rewrite_archive():
    """Copy an archive, replacing (or with ``None``, dropping) some entries."""

    def rewrite(archive: bytes, replace: dict[str, str | bytes | None]) -> bytes:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            entries: dict[str, str | bytes] = {n: zf.read(n) for n in zf.namelist()}
        for name, content in replace.items():
            if content is None:
                entries.pop(name, None)
            else:
                entries[name] = content
        return _build_archive(entries)

    return rewrite


@pytest.fixture
def manifest_json():
    """Manifest text for hand-built archives."""

    def make(entity_counts: dict[str, int] | None = None, **overrides: Any) -> str:
        manifest = BackupManifest.create(
            company_name="Acme SRL",
            company_cui="RO123",
            entity_counts=entity_counts or {},
            checksum="",
            includes_files=False,
        )
        if overrides:
            manifest = manifest.model_copy(update=overrides)
        return manifest.to_json()

    return make
