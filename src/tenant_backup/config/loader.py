"""Configuration loader for backup.toml."""

import tomllib
from pathlib import Path

from tenant_backup.config.models import (
    BackupConfig,
    BackupSettings,
    DatabaseProfile,
    StorageSettings,
)


def load_backup_config(config_path: Path | None = None) -> BackupConfig:
    """Load backup configuration from TOML file.

    Args:
        config_path: Path to backup.toml (default: ./backup.toml in the
            current working directory)

    Returns:
        BackupConfig with all profiles and the storage/backup settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        tomllib.TOMLDecodeError: If the file is not valid TOML
        pydantic.ValidationError: If a section has invalid values
    """
    if config_path is None:
        config_path = Path.cwd() / "backup.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Backup config not found: {config_path}\n"
            f"Copy backup.toml.example to backup.toml and configure your profiles."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    return BackupConfig(
        profiles=profiles,
        storage=StorageSettings(**data.get("storage", {})),
        backup=BackupSettings(**data.get("backup", {})),
    )
