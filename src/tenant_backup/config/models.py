"""Pydantic models for backup configuration."""

from pydantic import BaseModel, Field


class DatabaseProfile(BaseModel):
    """Database connection profile from backup.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    storage_root: str | None = None  # Overrides [storage] root for this profile


class StorageSettings(BaseModel):
    """Blob store settings from the ``[storage]`` table."""

    backend: str = "local"
    root: str = "storage"


class BackupSettings(BaseModel):
    """Backup defaults from the ``[backup]`` table."""

    output_dir: str = "backups"
    include_files: bool = True
    include_soft_deleted: bool = True
    verify_checksum: bool = False


class BackupConfig(BaseModel):
    """Complete configuration from backup.toml."""

    profiles: dict[str, DatabaseProfile]
    storage: StorageSettings = Field(default_factory=StorageSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)
