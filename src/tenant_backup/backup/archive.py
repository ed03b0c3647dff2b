"""ZIP container for tenant backups.

Layout::

    manifest.json                      BackupManifest, added last
    data/<table>.json                  JSON array of row objects
    files/<category>/<owner id>/<name> binary artifacts

Archives are assembled in, and read back from, a scratch file in the
system temp directory.  ``scratch_file()`` guarantees the file is removed
on every exit path.

The checksum covers every entry except the manifest, hashed in sorted
entry-name order (name, then content).  It does not depend on ZIP
timestamps, so exporting unchanged data twice yields the same checksum.

Usage:
    from tenant_backup.backup.archive import open_archive

    with open_archive(archive_bytes) as reader:
        manifest = reader.manifest()
        clients = reader.read_table("client")
"""

from collections.abc import Iterator
from contextlib import contextmanager
import hashlib
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any
import zipfile

from tenant_backup.backup.errors import ArchiveFormatError
from tenant_backup.backup.manifest import BackupManifest

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
DATA_PREFIX = "data/"
FILES_PREFIX = "files/"

_CHUNK_SIZE = 64 * 1024


def data_entry(table: str) -> str:
    return f"{DATA_PREFIX}{table}.json"


@contextmanager
def scratch_file(content: bytes | None = None) -> Iterator[Path]:
    """Yield a temp file path (optionally pre-filled); always delete it."""
    fd, name = tempfile.mkstemp(prefix="tenant-backup-", suffix=".zip")
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            if content:
                f.write(content)
        yield path
    finally:
        path.unlink(missing_ok=True)


def compute_checksum(zf: zipfile.ZipFile) -> str:
    """MD5 over all non-manifest entries of an open archive."""
    digest = hashlib.md5(usedforsecurity=False)
    for name in sorted(n for n in zf.namelist() if n != MANIFEST_NAME):
        digest.update(name.encode("utf-8"))
        with zf.open(name) as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    return digest.hexdigest()


class ArchiveWriter:
    """Writes archive entries to ``path``.

    Data and file entries are added first.  ``seal()`` closes them and
    returns their checksum, then ``add_manifest()`` appends the manifest.

    Raises:
        ArchiveFormatError: If the archive cannot be created or finalized.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._names: set[str] = set()
        try:
            self._zip: zipfile.ZipFile | None = zipfile.ZipFile(
                path, "w", compression=zipfile.ZIP_DEFLATED
            )
        except OSError as e:
            raise ArchiveFormatError(f"Failed to create backup archive: {e}") from e

    def add_table(self, table: str, rows: list[dict]) -> None:
        payload = json.dumps(rows, indent=2, ensure_ascii=False, default=str)
        self.add_bytes(data_entry(table), payload.encode("utf-8"))

    def add_bytes(self, name: str, data: bytes) -> None:
        if self._zip is None:
            raise ArchiveFormatError("Archive entries are already sealed")
        if name in self._names:
            logger.warning(f"Duplicate archive entry skipped: {name}")
            return
        self._zip.writestr(name, data)
        self._names.add(name)

    def has(self, name: str) -> bool:
        return name in self._names

    def seal(self) -> str:
        """Close the data/file entries and return their checksum."""
        if self._zip is None:
            raise ArchiveFormatError("Archive entries are already sealed")
        try:
            self._zip.close()
            self._zip = None
            with zipfile.ZipFile(self._path) as zf:
                return compute_checksum(zf)
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveFormatError(f"Failed to finalize backup archive: {e}") from e

    def add_manifest(self, manifest: BackupManifest) -> None:
        try:
            with zipfile.ZipFile(self._path, "a", compression=zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(MANIFEST_NAME, manifest.to_json())
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveFormatError(f"Failed to write manifest: {e}") from e

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None


class ArchiveReader:
    """Read-only view of an archive file.

    Raises:
        ArchiveFormatError: If the file is not a readable ZIP container.
    """

    def __init__(self, path: Path) -> None:
        try:
            self._zip = zipfile.ZipFile(path)
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveFormatError(f"Unreadable backup archive: {e}") from e
        self._names = set(self._zip.namelist())

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    @property
    def names(self) -> list[str]:
        return sorted(self._names)

    def has(self, name: str) -> bool:
        return name in self._names

    def manifest(self) -> BackupManifest:
        """Parse ``manifest.json``.

        Raises:
            ArchiveFormatError: If the manifest is missing or invalid.
        """
        if MANIFEST_NAME not in self._names:
            raise ArchiveFormatError("Backup archive has no manifest.json")
        return BackupManifest.from_json(self._read(MANIFEST_NAME))

    def tables(self) -> list[str]:
        """Names of the tables that have a data entry."""
        return sorted(
            name[len(DATA_PREFIX):-len(".json")]
            for name in self._names
            if name.startswith(DATA_PREFIX) and name.endswith(".json")
        )

    def read_table(self, table: str) -> list[dict] | None:
        """Rows of ``table``, or None when the archive has no entry for it.

        Raises:
            ArchiveFormatError: If the entry is not a JSON array of objects.
        """
        name = data_entry(table)
        if name not in self._names:
            return None
        try:
            rows = json.loads(self._read(name))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ArchiveFormatError(f"{name}: invalid JSON: {e}") from e
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise ArchiveFormatError(f"{name}: expected a JSON array of objects")
        return rows

    def read_file(self, name: str) -> bytes | None:
        if name not in self._names:
            return None
        return self._read(name)

    def checksum(self) -> str:
        try:
            return compute_checksum(self._zip)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveFormatError(f"Corrupt archive entry: {e}") from e

    def verify_checksum(self, expected: str | None = None) -> bool:
        """Compare the content checksum with ``expected`` (default: the manifest's)."""
        if expected is None:
            expected = self.manifest().checksum
        return self.checksum() == expected

    def _read(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveFormatError(f"Corrupt archive entry {name}: {e}") from e


@contextmanager
def open_archive(archive_bytes: bytes) -> Iterator[ArchiveReader]:
    """Stage ``archive_bytes`` in a scratch file and open it for reading."""
    with scratch_file(archive_bytes) as path:
        with ArchiveReader(path) as reader:
            yield reader
