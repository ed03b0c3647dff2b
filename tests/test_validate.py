"""Tests for validate_backup(): offline archive checks."""

import json

import pytest

from tenant_backup.backup.backup_restore import backup_database, validate_backup


@pytest.fixture
async def archive(db, schema, store) -> bytes:
    return await backup_database(db, schema, "t1", blob_store=store)


class TestValidArchive:
    async def test_fresh_backup_is_clean(self, schema, archive) -> None:
        assert validate_backup(archive, schema) == {
            "valid": True,
            "errors": [],
            "warnings": [],
        }

    def test_is_sync(self) -> None:
        import inspect

        assert not inspect.iscoroutinefunction(validate_backup)


class TestErrors:
    def test_not_a_zip(self, schema) -> None:
        report = validate_backup(b"plain text", schema)
        assert report["valid"] is False
        assert "Unreadable backup archive" in report["errors"][0]

    def test_missing_manifest(self, schema, build_archive) -> None:
        report = validate_backup(build_archive({"data/client.json": "[]"}), schema)
        assert report["valid"] is False
        assert report["errors"] == ["Backup archive has no manifest.json"]

    def test_unsupported_version(self, schema, build_archive, manifest_json) -> None:
        archive = build_archive({"manifest.json": manifest_json(version="3.0")})
        report = validate_backup(archive, schema)
        assert report["valid"] is False
        assert "Unsupported backup version '3.0'" in report["errors"][0]

    def test_row_without_primary_key(self, schema, build_archive, manifest_json) -> None:
        archive = build_archive(
            {
                "manifest.json": manifest_json({"client": 2}),
                "data/client.json": json.dumps([{"id": "c1"}, {"name": "no id"}]),
            }
        )
        report = validate_backup(archive, schema)
        assert report["valid"] is False
        assert report["errors"] == ["client row 1 missing 'id' field"]

    def test_malformed_table(self, schema, build_archive, manifest_json) -> None:
        archive = build_archive(
            {"manifest.json": manifest_json(), "data/client.json": '{"id": "c1"}'}
        )
        report = validate_backup(archive, schema)
        assert report["valid"] is False
        assert "expected a JSON array of objects" in report["errors"][0]


class TestWarnings:
    def test_count_mismatch(self, schema, build_archive, manifest_json) -> None:
        archive = build_archive(
            {
                "manifest.json": manifest_json({"client": 5}),
                "data/client.json": json.dumps([{"id": "c1"}]),
            }
        )
        report = validate_backup(archive, schema)
        assert report["valid"] is True
        assert report["warnings"] == ["client: manifest lists 5 rows, archive has 1"]

    def test_data_missing_for_counted_table(self, schema, build_archive, manifest_json) -> None:
        archive = build_archive({"manifest.json": manifest_json({"invoice": 2})})
        report = validate_backup(archive, schema)
        assert report["valid"] is True
        assert report["warnings"] == ["invoice: manifest lists 2 rows but data is missing"]

    def test_unknown_table(self, schema, build_archive, manifest_json) -> None:
        archive = build_archive(
            {"manifest.json": manifest_json(), "data/legacy_table.json": "[]"}
        )
        report = validate_backup(archive, schema)
        assert report["valid"] is True
        assert report["warnings"] == ["Unknown table in backup: legacy_table"]

    def test_orphaned_children(self, schema, build_archive, manifest_json) -> None:
        archive = build_archive(
            {
                "manifest.json": manifest_json({"invoice": 1, "invoice_line": 2}),
                "data/invoice.json": json.dumps([{"id": "i1"}]),
                "data/invoice_line.json": json.dumps(
                    [{"id": "l1", "invoice_id": "i1"}, {"id": "l2", "invoice_id": "i9"}]
                ),
            }
        )
        report = validate_backup(archive, schema)
        assert report["valid"] is True
        assert report["warnings"] == ["1 orphaned invoice_line rows: invoice_id not in backup"]

    async def test_checksum_mismatch(self, schema, archive, rewrite_archive) -> None:
        tampered = rewrite_archive(archive, {"files/invoices/i1/document.pdf": b"changed"})
        report = validate_backup(tampered, schema)
        assert report["valid"] is True
        assert report["warnings"] == [
            "Checksum mismatch: archive contents differ from manifest"
        ]
