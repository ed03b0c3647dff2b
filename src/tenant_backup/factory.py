"""Adapter and blob store factory.

Resolves a database profile from ``backup.toml`` and builds the objects a
backup or restore run needs.

Profile resolution order:
1. ``{env_prefix}BACKUP_PROFILE`` env var (for one-off runs or CI/CD)
2. ``.backup-profile`` lock file in the working directory (written by a
   successful ``tenant-backup check``)
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from tenant_backup.adapters.postgres import AsyncPostgresAdapter
from tenant_backup.backup.catalog import INVOICING_SCHEMA
from tenant_backup.backup.models import BackupSchema
from tenant_backup.config.loader import load_backup_config
from tenant_backup.config.models import BackupConfig, DatabaseProfile
from tenant_backup.schema.comparator import catalog_columns, validate_schema
from tenant_backup.schema.introspector import SchemaIntrospector
from tenant_backup.schema.models import ConnectionResult
from tenant_backup.storage.local import LocalBlobStore

logger = logging.getLogger(__name__)

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".backup-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip()
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful catalog check.

    Args:
        profile_name: Name of validated profile
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Args:
        env_prefix: Prefix for the env var, e.g. ``"INVOICING_"`` reads
            ``INVOICING_BACKUP_PROFILE``.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}BACKUP_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_var}=<name> tenant-backup check\n"
        "or pass --profile <name>. Profiles are defined in backup.toml."
    )


def get_active_profile(
    env_prefix: str = "",
    config: BackupConfig | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured
        KeyError: If profile not found in backup.toml
    """
    profile_name = get_active_profile_name(env_prefix)
    return profile_name, _get_profile(profile_name, config)


def _get_profile(profile_name: str, config: BackupConfig | None = None) -> DatabaseProfile:
    if config is None:
        config = load_backup_config()
    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in backup.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )
    return config.profiles[profile_name]


# ============================================================================
# Connection and Validation
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


async def connect_and_validate(
    profile_name: str | None = None,
    schema: BackupSchema = INVOICING_SCHEMA,
    env_prefix: str = "",
    validate_only: bool = False,
    config: BackupConfig | None = None,
) -> ConnectionResult:
    """Connect to a profile's database and check it against the catalog.

    On success the profile is written to the lock file (unless
    ``validate_only``), so later commands can omit ``--profile``.

    Args:
        profile_name: Profile name from backup.toml.  If None, uses the
            ``BACKUP_PROFILE`` env var or the existing lock file.
        schema: Backup catalog whose columns must exist.
        env_prefix: Prefix for the profile env var.
        validate_only: Only check; do not write the lock file.
        config: Preloaded config (default: ./backup.toml).

    Returns:
        ConnectionResult with success status and validation report

    Example:
        >>> result = await connect_and_validate("local")
        >>> if not result.success:
        ...     print(result.error)
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError as e:
            return ConnectionResult(success=False, error=str(e))

    try:
        profile = _get_profile(profile_name, config)
    except FileNotFoundError as e:
        return ConnectionResult(success=False, error=str(e))
    except KeyError as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=e.args[0])

    try:
        async with SchemaIntrospector(resolve_url(profile)) as introspector:
            actual_columns = await introspector.get_column_names()
    except Exception as e:
        logger.warning(f"Connection to profile '{profile_name}' failed: {e}")
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Failed to connect to database: {e}",
        )

    validation = validate_schema(actual_columns, catalog_columns(schema))

    if not validation.valid:
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            schema_valid=False,
            schema_report=validation,
            error=f"Schema validation failed: {validation.error_count} errors",
        )

    if not validate_only:
        write_profile_lock(profile_name)

    return ConnectionResult(
        success=True,
        profile_name=profile_name,
        schema_valid=True,
        schema_report=validation,
    )


# ============================================================================
# Factories
# ============================================================================


async def get_adapter(
    profile_name: str | None = None,
    database_url: str | None = None,
    env_prefix: str = "",
    config: BackupConfig | None = None,
    **engine_kwargs,
) -> AsyncPostgresAdapter:
    """Create a database adapter.

    ``database_url`` wins over profiles.  Otherwise the named (or active)
    profile from backup.toml is used.

    Raises:
        ProfileNotFoundError: If neither a URL nor a profile is available
        KeyError: If the profile is not in backup.toml
    """
    if database_url is None:
        if profile_name is None:
            profile_name = get_active_profile_name(env_prefix)
        database_url = resolve_url(_get_profile(profile_name, config))
        logger.debug(f"Using database profile '{profile_name}'")

    return AsyncPostgresAdapter(database_url, **engine_kwargs)


def get_blob_store(
    profile_name: str | None = None,
    env_prefix: str = "",
    config: BackupConfig | None = None,
) -> LocalBlobStore:
    """Create the blob store for a profile.

    Uses the profile's ``storage_root`` when set, else ``[storage] root``.

    Raises:
        ValueError: If the configured storage backend is not supported
    """
    if config is None:
        config = load_backup_config()
    if config.storage.backend != "local":
        raise ValueError(f"Unsupported storage backend: {config.storage.backend}")

    root = config.storage.root
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError:
            profile_name = None
    if profile_name is not None and profile_name in config.profiles:
        root = config.profiles[profile_name].storage_root or root

    return LocalBlobStore(root)
