"""CLI for tenant backup and restore.

Provides commands to export a company to a ZIP archive, restore an archive
into a company, inspect and validate archives offline, and check the
backup catalog against a live database.

Usage:
    BACKUP_PROFILE=local tenant-backup check
    tenant-backup profiles
    tenant-backup backup <company-id> --name "Acme SRL" --cui RO123
    tenant-backup restore <company-id> backups/backup.zip --purge --yes
    tenant-backup validate backups/backup.zip
    tenant-backup inspect backups/backup.zip

Commands:
    check     - Connect to database and check it against the backup catalog
    profiles  - List available profiles
    backup    - Export a company to a backup archive
    restore   - Restore a backup archive into a company
    validate  - Validate a backup archive without touching the database
    inspect   - Show a backup archive's manifest
"""

import argparse
import asyncio
from datetime import datetime
from pathlib import Path
import sys

from rich.console import Console
from rich.table import Table

from tenant_backup.backup.archive import open_archive
from tenant_backup.backup.backup_restore import validate_backup
from tenant_backup.backup.catalog import INVOICING_SCHEMA
from tenant_backup.backup.errors import BackupError
from tenant_backup.backup.service import BackupService
from tenant_backup.config.loader import load_backup_config
from tenant_backup.config.models import BackupConfig
from tenant_backup.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    get_active_profile_name,
    get_adapter,
    get_blob_store,
    read_profile_lock,
)

console = Console()


def _print_progress(percent: int, step: str) -> None:
    console.print(f"[dim]{percent:>3}%[/dim] {step}")


def _load_config() -> BackupConfig | None:
    try:
        return load_backup_config()
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _resolve_profile(args: argparse.Namespace) -> str | None:
    profile = getattr(args, "profile", None)
    if profile:
        return profile
    try:
        return get_active_profile_name(getattr(args, "env_prefix", ""))
    except ProfileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        return None


def _counts_table(title: str, counts: dict[str, int]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        if count:
            table.add_row(name, str(count))
    table.add_row("[bold]Total[/bold]", f"[bold]{sum(counts.values())}[/bold]")
    return table


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_check(args: argparse.Namespace) -> int:
    """Async implementation for check command.

    Args:
        args: Parsed arguments with env_prefix and optional profile.

    Returns:
        0 on success, 1 on failure.
    """
    env_prefix = getattr(args, "env_prefix", "")
    previous_profile = read_profile_lock()

    console.print("Connecting to database...", style="dim")

    result = await connect_and_validate(
        profile_name=getattr(args, "profile", None), env_prefix=env_prefix
    )

    if result.success:
        console.print()
        console.print(
            f"[bold green]v[/bold green] Connected to profile: "
            f"[bold cyan]{result.profile_name}[/bold cyan]"
        )
        console.print("  Backup catalog: [green]PASSED[/green]")
        if result.schema_report and result.schema_report.extra_tables:
            console.print(
                f"  [dim]{len(result.schema_report.extra_tables)} tables outside "
                f"the backup catalog[/dim]"
            )

        if previous_profile and previous_profile != result.profile_name:
            console.print(
                f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
                f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
            )
        return 0

    console.print()
    console.print(f"[bold red]x[/bold red] {result.error}")
    if result.schema_report:
        console.print("\n[bold]Catalog check report:[/bold]")
        console.print(result.schema_report.format_report())
    return 1


async def _async_backup(args: argparse.Namespace) -> int:
    """Async implementation for backup command.

    Args:
        args: Parsed arguments with company_id, name, cui, output and flags.

    Returns:
        0 on success, 1 on failure.
    """
    config = _load_config()
    if config is None:
        return 1
    profile = _resolve_profile(args)
    if profile is None:
        return 1

    include_files = config.backup.include_files and not args.no_files
    include_soft_deleted = config.backup.include_soft_deleted and not args.exclude_soft_deleted

    output = Path(args.output) if args.output else (
        Path(config.backup.output_dir)
        / f"backup-{args.company_id}-{datetime.now().strftime('%Y-%m-%d-%H%M')}.zip"
    )

    adapter = await get_adapter(profile_name=profile, config=config)
    try:
        service = BackupService(
            adapter,
            blob_store=get_blob_store(profile, config=config) if include_files else None,
        )
        archive = await service.generate_backup(
            args.company_id,
            {"name": args.name, "cui": args.cui},
            include_files=include_files,
            progress=_print_progress,
            include_soft_deleted=include_soft_deleted,
        )
    except BackupError as e:
        console.print(f"[bold red]x[/bold red] Backup failed: {e}")
        return 1
    finally:
        await adapter.close()

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(archive)

    console.print()
    console.print(f"[bold green]v[/bold green] Backup written to [cyan]{output}[/cyan]")
    console.print(f"  Size: {len(archive):,} bytes")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command.

    Args:
        args: Parsed arguments with company_id, archive and flags.

    Returns:
        0 on success, 1 on failure or cancellation.
    """
    archive_path = Path(args.archive)
    if not archive_path.exists():
        console.print(f"[red]Error: Backup archive not found: {archive_path}[/red]")
        return 1

    config = _load_config()
    if config is None:
        return 1
    profile = _resolve_profile(args)
    if profile is None:
        return 1

    if args.purge and not args.yes:
        console.print(
            f"[yellow]This will DELETE all current data of company "
            f"{args.company_id} in profile {profile} before restoring.[/yellow]"
        )
        response = input("Continue? [y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 1

    include_files = not args.no_files
    verify_checksum = args.verify_checksum or config.backup.verify_checksum

    adapter = await get_adapter(profile_name=profile, config=config)
    try:
        service = BackupService(
            adapter,
            blob_store=get_blob_store(profile, config=config) if include_files else None,
        )
        summary = await service.restore_backup_detailed(
            args.company_id,
            archive_path.read_bytes(),
            purge_existing=args.purge,
            include_files=include_files,
            progress=_print_progress,
            verify_checksum=verify_checksum,
        )
    except BackupError as e:
        console.print(f"[bold red]x[/bold red] Restore failed: {e}")
        if e.__cause__ is not None:
            console.print(f"  [dim]Cause: {e.__cause__!r}[/dim]")
        return 1
    finally:
        await adapter.close()

    console.print()
    console.print(_counts_table("Restored Rows", summary.entity_counts))
    console.print(f"Files restored: {summary.files_restored}")
    for warning in summary.file_warnings:
        console.print(
            f"  [yellow]![/yellow] {warning.archive_path}: {warning.error}"
        )
    console.print(f"\n[bold green]v[/bold green] Restore into {args.company_id} complete")
    return 0


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_check(args: argparse.Namespace) -> int:
    """Connect to database and check it against the backup catalog.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_check(args))


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from backup.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if backup.toml not found.
    """
    config = _load_config()
    if config is None:
        return 1

    current = read_profile_lock()

    table = Table(
        title="Database Profiles", show_header=True, header_style="bold"
    )
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Storage")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.storage_root or config.storage.root,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    """Export a company to a backup archive.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_backup(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore a backup archive into a company.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_restore(args))


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a backup archive.  No database calls.

    Returns:
        0 if the archive is valid, 1 otherwise.
    """
    archive_path = Path(args.archive)
    if not archive_path.exists():
        console.print(f"[red]Error: Backup archive not found: {archive_path}[/red]")
        return 1

    report = validate_backup(archive_path.read_bytes(), INVOICING_SCHEMA)

    for error in report["errors"]:
        console.print(f"  [red]x[/red] {error}")
    for warning in report["warnings"]:
        console.print(f"  [yellow]![/yellow] {warning}")

    if report["valid"]:
        console.print("[bold green]v[/bold green] Backup archive is valid")
        return 0
    console.print(
        f"[bold red]x[/bold red] Backup archive is invalid "
        f"({len(report['errors'])} errors)"
    )
    return 1


def cmd_inspect(args: argparse.Namespace) -> int:
    """Show a backup archive's manifest.  No database calls.

    Returns:
        0 on success, 1 if the archive cannot be read.
    """
    archive_path = Path(args.archive)
    if not archive_path.exists():
        console.print(f"[red]Error: Backup archive not found: {archive_path}[/red]")
        return 1

    try:
        with open_archive(archive_path.read_bytes()) as reader:
            manifest = reader.manifest()
            file_count = sum(1 for name in reader.names if name.startswith("files/"))
    except BackupError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    info = Table(title="Backup Manifest", show_header=False)
    info.add_column("Key", style="dim")
    info.add_column("Value")
    info.add_row("Version", manifest.version)
    info.add_row("Generator", manifest.generator)
    info.add_row("Company", manifest.company.name or "-")
    info.add_row("CUI", manifest.company.cui or "-")
    info.add_row("Created", manifest.created_at or "-")
    info.add_row("Checksum", manifest.checksum or "-")
    info.add_row("Includes files", "yes" if manifest.includes_files else "no")
    info.add_row("Files", str(file_count))
    info.add_row(
        "Compatible",
        "[green]yes[/green]" if manifest.is_compatible() else "[red]no[/red]",
    )

    console.print(info)
    console.print(_counts_table("Entity Counts", manifest.entity_counts))
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="tenant-backup",
        description="Company backup and restore for the invoicing database",
    )

    # Global option: --env-prefix
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_BACKUP_PROFILE)"
        ),
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # check command
    p_check = subparsers.add_parser(
        "check",
        help="Connect to database and check it against the backup catalog",
    )
    p_check.add_argument("--profile", "-p", help="Profile from backup.toml")
    p_check.set_defaults(func=cmd_check)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # backup command
    p_backup = subparsers.add_parser(
        "backup",
        help="Export a company to a backup archive",
    )
    p_backup.add_argument("company_id", help="Company to export")
    p_backup.add_argument("--profile", "-p", help="Profile from backup.toml")
    p_backup.add_argument("--name", default="", help="Company name for the manifest")
    p_backup.add_argument("--cui", default="", help="Company tax id for the manifest")
    p_backup.add_argument(
        "--output",
        "-o",
        help="Archive path (default: <output_dir>/backup-<company>-<timestamp>.zip)",
    )
    p_backup.add_argument(
        "--no-files",
        action="store_true",
        help="Do not copy invoice documents and attachments into the archive",
    )
    p_backup.add_argument(
        "--exclude-soft-deleted",
        action="store_true",
        help="Skip soft-deleted rows",
    )
    p_backup.set_defaults(func=cmd_backup)

    # restore command
    p_restore = subparsers.add_parser(
        "restore",
        help="Restore a backup archive into a company",
    )
    p_restore.add_argument("company_id", help="Company that receives the data")
    p_restore.add_argument("archive", help="Path to backup archive")
    p_restore.add_argument("--profile", "-p", help="Profile from backup.toml")
    p_restore.add_argument(
        "--purge",
        action="store_true",
        help="Delete the company's current data first (same transaction)",
    )
    p_restore.add_argument(
        "--no-files",
        action="store_true",
        help="Restore rows only",
    )
    p_restore.add_argument(
        "--verify-checksum",
        action="store_true",
        help="Refuse archives whose contents do not match the manifest checksum",
    )
    p_restore.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip confirmation prompt",
    )
    p_restore.set_defaults(func=cmd_restore)

    # validate command
    p_validate = subparsers.add_parser(
        "validate",
        help="Validate a backup archive without touching the database",
    )
    p_validate.add_argument("archive", help="Path to backup archive")
    p_validate.set_defaults(func=cmd_validate)

    # inspect command
    p_inspect = subparsers.add_parser(
        "inspect",
        help="Show a backup archive's manifest",
    )
    p_inspect.add_argument("archive", help="Path to backup archive")
    p_inspect.set_defaults(func=cmd_inspect)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
