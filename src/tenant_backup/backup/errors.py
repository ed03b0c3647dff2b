"""Errors raised by the backup and restore engine.

``ArchiveFormatError`` and ``IncompatibleVersionError`` are raised while
validating an archive, before any transaction is opened.
``TransactionFailure`` wraps whatever went wrong inside the restore
transaction after it has been rolled back; the original exception is
available as ``__cause__``.
"""

from pydantic import BaseModel


class BackupError(Exception):
    """Base class for backup/restore errors."""


class CatalogError(BackupError):
    """The table catalog is inconsistent (unknown parent, FK cycle, ...)."""


class ArchiveFormatError(BackupError):
    """The archive is unreadable, or its manifest is missing or invalid."""


class IncompatibleVersionError(BackupError):
    """The archive was produced by a newer, unsupported format version."""

    def __init__(self, version: str, supported: str) -> None:
        super().__init__(
            f"Incompatible backup version: {version} (supported <= {supported})"
        )
        self.version = version
        self.supported = supported


class TransactionFailure(BackupError):
    """The restore transaction failed and was rolled back."""

    def __init__(self, message: str, table: str | None = None) -> None:
        super().__init__(message)
        self.table = table


class FileRestoreWarning(BaseModel):
    """A binary file that could not be restored.  Non-fatal."""

    table: str
    owner_id: str
    archive_path: str
    error: str
