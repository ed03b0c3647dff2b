"""Binary object storage.

Usage:
    from tenant_backup.storage import BlobStore, LocalBlobStore
"""

from tenant_backup.storage.base import BlobStore
from tenant_backup.storage.local import LocalBlobStore

__all__ = [
    "BlobStore",
    "LocalBlobStore",
]
