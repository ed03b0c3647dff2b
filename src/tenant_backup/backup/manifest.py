"""Backup manifest: the versioned header stored as ``manifest.json``.

The manifest describes one archive: format version, generator tag, the
tenant's display name and tax id, per-table row counts, the content
checksum and whether binary files were included.

Usage:
    from tenant_backup.backup.manifest import BackupManifest

    manifest = BackupManifest.create(
        company_name="Acme SRL",
        company_cui="RO123",
        entity_counts={"client": 3},
        checksum="d41d8cd98f00b204e9800998ecf8427e",
        includes_files=True,
    )
    text = manifest.to_json()
    same = BackupManifest.from_json(text)
    same.is_compatible()   # True
"""

from datetime import datetime, timezone
import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tenant_backup.backup.errors import ArchiveFormatError

VERSION = "1.0"
GENERATOR = "tenant-backup"


class CompanyInfo(BaseModel):
    """Tenant display metadata carried in the manifest."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    cui: str = ""


class BackupManifest(BaseModel):
    """Immutable archive header.

    Serialized with camelCase keys::

        {"version", "generator", "company": {"name", "cui"}, "createdAt",
         "entityCounts", "checksum", "includesFiles"}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str
    generator: str = "unknown"
    company: CompanyInfo = Field(default_factory=CompanyInfo)
    created_at: str = Field(default="", alias="createdAt")
    entity_counts: dict[str, int] = Field(default_factory=dict, alias="entityCounts")
    checksum: str = ""
    includes_files: bool = Field(default=True, alias="includesFiles")

    @classmethod
    def create(
        cls,
        company_name: str,
        company_cui: str,
        entity_counts: dict[str, int],
        checksum: str,
        includes_files: bool,
    ) -> "BackupManifest":
        """Build a manifest for a fresh export stamped with the current time."""
        return cls(
            version=VERSION,
            generator=GENERATOR,
            company=CompanyInfo(name=company_name, cui=company_cui),
            created_at=datetime.now(timezone.utc).isoformat(),
            entity_counts=dict(entity_counts),
            checksum=checksum,
            includes_files=includes_files,
        )

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), indent=2)

    @classmethod
    def from_json(cls, text: str | bytes) -> "BackupManifest":
        """Parse manifest text.

        Missing optional keys fall back to their defaults.

        Raises:
            ArchiveFormatError: If the text is not a JSON object, has no
                ``version`` or has fields of the wrong type.
        """
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ArchiveFormatError(f"Invalid manifest JSON: {e}") from e

        if not isinstance(data, dict):
            raise ArchiveFormatError("Manifest must be a JSON object")
        if not data.get("version"):
            raise ArchiveFormatError("Manifest is missing 'version'")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ArchiveFormatError(f"Invalid manifest: {e}") from e

    def is_compatible(self, supported: str = VERSION) -> bool:
        """True when this archive's version is not newer than ``supported``."""
        try:
            return _version_tuple(self.version) <= _version_tuple(supported)
        except ValueError:
            return False

    @property
    def total_entity_count(self) -> int:
        return sum(self.entity_counts.values())


def _version_tuple(version: str) -> tuple[int, ...]:
    """``"1.10"`` -> ``(1, 10)``, padded so ``"1"`` equals ``"1.0"``."""
    parts = [int(p) for p in version.strip().split(".")]
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)
