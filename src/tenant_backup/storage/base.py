"""Binary object store protocol.

The backup engine reads and writes the files owned by tenant rows
(generated invoice XML/PDF, signatures, attachments) through this
interface.  Paths are relative, ``/``-separated storage keys such as
``invoices/<tenant>/<id>.pdf``.

Usage:
    from tenant_backup.storage.base import BlobStore

    async def copy(store: BlobStore, src: str, dst: str) -> None:
        if await store.exists(src):
            await store.write(dst, await store.read(src))
"""

from typing import Protocol


class BlobStore(Protocol):
    """Async key/value store for binary artifacts."""

    async def write(self, path: str, data: bytes) -> None:
        """Write ``data`` at ``path``, replacing any existing object."""
        ...

    async def read(self, path: str) -> bytes:
        """Read the object at ``path``.

        Raises:
            FileNotFoundError: If no object exists at ``path``.
        """
        ...

    async def exists(self, path: str) -> bool:
        """Return ``True`` if an object exists at ``path``."""
        ...

    async def delete(self, path: str) -> None:
        """Delete the object at ``path``.  Missing objects are ignored."""
        ...
