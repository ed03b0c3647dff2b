"""Tests for the tenant-backup CLI."""

import inspect
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tenant_backup.backup.backup_restore import backup_database
from tenant_backup.cli import (
    cmd_backup,
    cmd_check,
    cmd_inspect,
    cmd_profiles,
    cmd_restore,
    cmd_validate,
    main,
)
from tenant_backup.config.models import BackupConfig, BackupSettings, DatabaseProfile
from tenant_backup.schema.models import ConnectionResult

from conftest import FakeDatabase, MemoryBlobStore, SAMPLE_DATA


@pytest.fixture
def config(tmp_path: Path) -> BackupConfig:
    return BackupConfig(
        profiles={"local": DatabaseProfile(url="postgresql://u:p@localhost/db")},
        backup=BackupSettings(output_dir=str(tmp_path / "backups")),
    )


@pytest.fixture
def archive_file(tmp_path: Path, db, schema, store) -> Path:
    import asyncio

    path = tmp_path / "backup.zip"
    path.write_bytes(asyncio.run(backup_database(db, schema, "t1", {"name": "Acme SRL"}, store)))
    return path


@pytest.fixture
def wired(config):
    """Patch config, adapter and blob store lookups used by the CLI."""
    database = FakeDatabase(SAMPLE_DATA)
    blob_store = MemoryBlobStore()
    with patch("tenant_backup.cli.load_backup_config", return_value=config), \
         patch("tenant_backup.cli.get_adapter", AsyncMock(return_value=database)), \
         patch("tenant_backup.cli.get_blob_store", MagicMock(return_value=blob_store)):
        yield database, blob_store


# ------------------------------------------------------------------
# Structure
# ------------------------------------------------------------------


class TestAsyncWrapping:
    @pytest.mark.parametrize("command", [cmd_check, cmd_backup, cmd_restore])
    def test_db_commands_call_asyncio_run(self, command) -> None:
        assert "asyncio.run" in inspect.getsource(command)

    @pytest.mark.parametrize("command", [cmd_profiles, cmd_validate, cmd_inspect])
    def test_offline_commands_are_sync(self, command) -> None:
        assert "asyncio.run" not in inspect.getsource(command)


class TestArguments:
    def test_env_prefix_is_global(self) -> None:
        with patch("tenant_backup.cli.cmd_profiles", return_value=0) as mock_profiles:
            assert main(["--env-prefix", "APP_", "profiles"]) == 0
        assert mock_profiles.call_args[0][0].env_prefix == "APP_"

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            main([])

    def test_restore_requires_archive(self) -> None:
        with pytest.raises(SystemExit):
            main(["restore", "t1"])


# ------------------------------------------------------------------
# Offline commands
# ------------------------------------------------------------------


class TestValidateCommand:
    def test_valid_archive(self, archive_file: Path) -> None:
        assert main(["validate", str(archive_file)]) == 0

    def test_invalid_archive(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.zip"
        path.write_bytes(b"not a zip")
        assert main(["validate", str(path)]) == 1

    def test_missing_file(self, tmp_path: Path) -> None:
        assert main(["validate", str(tmp_path / "nope.zip")]) == 1


class TestInspectCommand:
    def test_shows_manifest(self, archive_file: Path, capsys) -> None:
        assert main(["inspect", str(archive_file)]) == 0
        output = capsys.readouterr().out
        assert "Acme SRL" in output
        assert "invoice_line" in output

    def test_unreadable_archive(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.zip"
        path.write_bytes(b"nope")
        assert main(["inspect", str(path)]) == 1


class TestProfilesCommand:
    def test_lists_profiles(self, config, capsys) -> None:
        with patch("tenant_backup.cli.load_backup_config", return_value=config), \
             patch("tenant_backup.cli.read_profile_lock", return_value="local"):
            assert main(["profiles"]) == 0
        assert "local" in capsys.readouterr().out

    def test_missing_config(self) -> None:
        with patch(
            "tenant_backup.cli.load_backup_config",
            side_effect=FileNotFoundError("Backup config not found: backup.toml"),
        ):
            assert main(["profiles"]) == 1


# ------------------------------------------------------------------
# Database commands
# ------------------------------------------------------------------


class TestCheckCommand:
    def test_success(self) -> None:
        result = ConnectionResult(success=True, profile_name="local", schema_valid=True)
        with patch("tenant_backup.cli.connect_and_validate", AsyncMock(return_value=result)) as check, \
             patch("tenant_backup.cli.read_profile_lock", return_value=None):
            assert main(["check", "--profile", "local"]) == 0
        check.assert_awaited_once_with(profile_name="local", env_prefix="")

    def test_failure(self) -> None:
        result = ConnectionResult(success=False, error="Failed to connect to database: refused")
        with patch("tenant_backup.cli.connect_and_validate", AsyncMock(return_value=result)), \
             patch("tenant_backup.cli.read_profile_lock", return_value=None):
            assert main(["check"]) == 1


class TestBackupCommand:
    def test_writes_archive(self, wired, tmp_path: Path) -> None:
        database, _ = wired
        output = tmp_path / "out" / "acme.zip"
        code = main(
            ["backup", "t1", "--profile", "local", "--name", "Acme SRL", "--output", str(output)]
        )
        assert code == 0
        assert output.read_bytes()[:2] == b"PK"
        assert database.closed is True

    def test_default_output_dir(self, wired, config) -> None:
        assert main(["backup", "t1", "--profile", "local", "--no-files"]) == 0
        written = list(Path(config.backup.output_dir).glob("backup-t1-*.zip"))
        assert len(written) == 1


class TestRestoreCommand:
    def test_restores_into_tenant(self, wired, archive_file: Path) -> None:
        database, _ = wired
        assert main(["restore", "t9", str(archive_file), "--profile", "local"]) == 0
        assert len(database.rows("client", company_id="t9")) == 2
        assert database.closed is True

    def test_purge_needs_confirmation(self, wired, archive_file: Path) -> None:
        database, _ = wired
        with patch("builtins.input", return_value="n"):
            code = main(["restore", "t1", str(archive_file), "--profile", "local", "--purge"])
        assert code == 1
        assert [r["id"] for r in database.rows("client", company_id="t1")] == ["c1", "c2"]

    def test_purge_with_yes(self, wired, archive_file: Path) -> None:
        database, _ = wired
        code = main(
            ["restore", "t1", str(archive_file), "--profile", "local", "--purge", "--yes"]
        )
        assert code == 0
        ids = {r["id"] for r in database.rows("client", company_id="t1")}
        assert len(ids) == 2
        assert not ids & {"c1", "c2"}

    def test_failure_returns_one(self, wired, archive_file: Path) -> None:
        database, _ = wired
        database.fail_on_insert = "client"
        assert main(["restore", "t9", str(archive_file), "--profile", "local"]) == 1
        assert database.rows("client", company_id="t9") == []

    def test_missing_archive(self, wired, tmp_path: Path) -> None:
        assert main(["restore", "t9", str(tmp_path / "nope.zip"), "--profile", "local"]) == 1
