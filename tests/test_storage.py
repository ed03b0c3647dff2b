"""Tests for LocalBlobStore."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from tenant_backup.storage.local import LocalBlobStore


@pytest.fixture
def local_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "storage")


class TestLocalBlobStore:
    async def test_write_then_read(self, local_store: LocalBlobStore) -> None:
        await local_store.write("invoices/t1/i1.pdf", b"%PDF")
        assert await local_store.exists("invoices/t1/i1.pdf") is True
        assert await local_store.read("invoices/t1/i1.pdf") == b"%PDF"
        assert (local_store.root / "invoices" / "t1" / "i1.pdf").read_bytes() == b"%PDF"

    async def test_overwrite_leaves_no_temp_files(self, local_store: LocalBlobStore) -> None:
        await local_store.write("a/b.bin", b"one")
        await local_store.write("a/b.bin", b"two")
        assert await local_store.read("a/b.bin") == b"two"
        assert [p.name for p in (local_store.root / "a").iterdir()] == ["b.bin"]

    async def test_failed_rename_removes_temp_file(self, local_store: LocalBlobStore) -> None:
        with patch(
            "tenant_backup.storage.local.aiofiles.os.replace",
            AsyncMock(side_effect=OSError("read-only file system")),
        ):
            with pytest.raises(OSError, match="read-only"):
                await local_store.write("a/b.bin", b"one")
        assert list((local_store.root / "a").iterdir()) == []

    async def test_missing_object(self, local_store: LocalBlobStore) -> None:
        assert await local_store.exists("nope.pdf") is False
        with pytest.raises(FileNotFoundError):
            await local_store.read("nope.pdf")

    async def test_directory_is_not_an_object(self, local_store: LocalBlobStore) -> None:
        await local_store.write("invoices/t1/i1.pdf", b"%PDF")
        assert await local_store.exists("invoices/t1") is False

    async def test_delete(self, local_store: LocalBlobStore) -> None:
        await local_store.write("x.bin", b"x")
        await local_store.delete("x.bin")
        await local_store.delete("x.bin")
        assert await local_store.exists("x.bin") is False

    async def test_leading_slash_stays_inside_root(self, local_store: LocalBlobStore) -> None:
        await local_store.write("/signatures/t1/i1.p7s", b"sig")
        assert (local_store.root / "signatures" / "t1" / "i1.p7s").exists()

    @pytest.mark.parametrize("path", ["../escape.bin", "invoices/../../escape.bin"])
    async def test_path_escape_is_rejected(self, local_store: LocalBlobStore, path: str) -> None:
        with pytest.raises(ValueError, match="escapes store root"):
            await local_store.write(path, b"x")
        with pytest.raises(ValueError, match="escapes store root"):
            await local_store.exists(path)
