"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from tenant_backup.config import load_backup_config, DatabaseProfile, BackupConfig
"""

from tenant_backup.config.loader import load_backup_config
from tenant_backup.config.models import (
    BackupConfig,
    BackupSettings,
    DatabaseProfile,
    StorageSettings,
)

__all__ = [
    "load_backup_config",
    "BackupConfig",
    "BackupSettings",
    "DatabaseProfile",
    "StorageSettings",
]
