"""Filesystem-backed blob store.

Stores objects as plain files under a root directory.  Writes go to a
temporary sibling first and are renamed into place, so readers never see
partial files.

Usage:
    from tenant_backup.storage.local import LocalBlobStore

    store = LocalBlobStore("/var/lib/invoicing/storage")
    await store.write("invoices/t1/abc.pdf", pdf_bytes)
"""

import uuid
from pathlib import Path

import aiofiles
import aiofiles.os


class LocalBlobStore:
    """``BlobStore`` implementation over a local directory.

    Args:
        root: Directory that holds every stored object.  Created on first
            write if missing.

    Raises:
        ValueError: From any method, if a path escapes ``root``.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        """Map a storage key to a file under the root directory."""
        target = (self._root / path.lstrip("/")).resolve()
        if target != self._root and self._root not in target.parents:
            raise ValueError(f"Storage path escapes store root: {path}")
        return target

    async def write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        await aiofiles.os.makedirs(target.parent, exist_ok=True)

        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(tmp_path, target)
        finally:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)

    async def read(self, path: str) -> bytes:
        async with aiofiles.open(self._resolve(path), "rb") as f:
            return await f.read()

    async def exists(self, path: str) -> bool:
        return await aiofiles.os.path.isfile(self._resolve(path))

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        if await aiofiles.os.path.exists(target):
            await aiofiles.os.remove(target)
