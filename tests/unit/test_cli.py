"""
Tests for the CLI module.
"""

import json
import logging
import os
import zipfile
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import yaml
from rich.logging import RichHandler
from typer.testing import CliRunner

from productsync.cli import app
from productsync.errors import ProductSyncError, StoreWriteFailure
from productsync.platform import CATALOG_PARENT, UNINSTALL_PARENT
from productsync.store import Record
from productsync.store.memory import MemoryStore
from productsync.store.registry import RegistryStore

RECORDS = {
    CATALOG_PARENT: {
        "7C4F": {"ProductName": "Widget 2.400.1", "Version": 0x02FF0FA1},
    },
    UNINSTALL_PARENT: {
        "{GUID-1}": {
            "DisplayName": "Widget 2.400.1",
            "DisplayVersion": "2.255.4001",
            "Version": 0x02FF0FA1,
            "VersionMajor": 2,
            "VersionMinor": 255,
        },
    },
}


@pytest.fixture
def runner() -> CliRunner:
    """Fixture to create a CLI runner."""
    return CliRunner()


@pytest.fixture
def store_file(tmp_path: Path) -> Path:
    """Fixture holding the product records in a YAML file store."""
    path = tmp_path / "registry.yaml"
    path.write_text(yaml.safe_dump(RECORDS))
    return path


@pytest.fixture
def no_config(tmp_path: Path) -> str:
    return str(tmp_path / "no-config.yaml")


def make_war(path: Path, manifest: str) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("META-INF/MANIFEST.MF", manifest)
    return path


def test_version(runner: CliRunner) -> None:
    """Test the version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "ProductSync version" in result.stdout


def test_encode_command(runner: CliRunner) -> None:
    result = runner.invoke(app, ["encode", "2.528.3", "--json"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["encoded"] == 0x02FF14A3
    assert data["hex"] == "0x02FF14A3"
    assert data["display_version"] == "2.255.5283"


def test_encode_command_plain(runner: CliRunner) -> None:
    result = runner.invoke(app, ["encode", "2.5.7"])
    assert result.exit_code == 0
    assert "0x02050007" in result.stdout


def test_encode_command_invalid(runner: CliRunner) -> None:
    result = runner.invoke(app, ["encode", "2.x"])
    assert result.exit_code == 1


def test_sync_with_version_string(
    runner: CliRunner, store_file: Path, no_config: str
) -> None:
    result = runner.invoke(
        app,
        [
            "sync",
            "--version-string",
            "2.528.3",
            "--product",
            "Widget",
            "--store-file",
            str(store_file),
            "--config",
            no_config,
        ],
    )
    assert result.exit_code == 0
    assert "Updated 5 field(s) for Widget 2.528.3" in result.stdout

    data = yaml.safe_load(store_file.read_text())
    assert data[CATALOG_PARENT]["7C4F"] == {
        "ProductName": "Widget 2.528.3",
        "Version": 0x02FF14A3,
    }
    assert data[UNINSTALL_PARENT]["{GUID-1}"]["DisplayVersion"] == "2.255.5283"


def test_sync_twice_is_up_to_date(
    runner: CliRunner, store_file: Path, no_config: str
) -> None:
    args = [
        "sync",
        "--version-string",
        "2.528.3",
        "-p",
        "Widget",
        "--store-file",
        str(store_file),
        "-c",
        no_config,
    ]
    runner.invoke(app, args)
    result = runner.invoke(app, args)
    assert result.exit_code == 0
    assert "Widget 2.528.3 is already up to date" in result.stdout


def test_sync_reads_archive(
    runner: CliRunner, store_file: Path, no_config: str, tmp_path: Path
) -> None:
    war = make_war(tmp_path / "widget.war", "Jenkins-Version: 2.528.3\r\n")
    result = runner.invoke(
        app,
        [
            "sync",
            "--archive",
            str(war),
            "-p",
            "Widget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
        ],
    )
    assert result.exit_code == 0
    data = yaml.safe_load(store_file.read_text())
    assert data[CATALOG_PARENT]["7C4F"]["ProductName"] == "Widget 2.528.3"


def test_sync_archive_from_env(
    runner: CliRunner, store_file: Path, no_config: str, tmp_path: Path
) -> None:
    war = make_war(tmp_path / "widget.war", "Jenkins-Version: 2.600.1\n")
    with patch.dict(os.environ, {"PRODUCTSYNC_ARCHIVE": str(war)}):
        result = runner.invoke(
            app,
            ["sync", "-p", "Widget", "--store-file", str(store_file), "-c", no_config],
        )
    assert result.exit_code == 0
    data = yaml.safe_load(store_file.read_text())
    assert data[UNINSTALL_PARENT]["{GUID-1}"]["DisplayName"] == "Widget 2.600.1"


def test_sync_missing_manifest_field(
    runner: CliRunner, store_file: Path, no_config: str, tmp_path: Path
) -> None:
    war = make_war(tmp_path / "widget.war", "Manifest-Version: 1.0\n")
    before = store_file.read_text()
    result = runner.invoke(
        app,
        [
            "sync",
            "-a",
            str(war),
            "-p",
            "Widget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
        ],
    )
    assert result.exit_code == 1
    assert "Jenkins-Version" in result.stdout
    assert store_file.read_text() == before


def test_sync_invalid_version(
    runner: CliRunner, store_file: Path, no_config: str
) -> None:
    before = store_file.read_text()
    result = runner.invoke(
        app,
        [
            "sync",
            "--version-string",
            "two.five",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
        ],
    )
    assert result.exit_code == 1
    assert store_file.read_text() == before


def test_sync_record_not_found(
    runner: CliRunner, store_file: Path, no_config: str
) -> None:
    result = runner.invoke(
        app,
        [
            "sync",
            "--version-string",
            "2.528.3",
            "-p",
            "Gadget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
        ],
    )
    assert result.exit_code == 1


def test_sync_dry_run(runner: CliRunner, store_file: Path, no_config: str) -> None:
    before = store_file.read_text()
    result = runner.invoke(
        app,
        [
            "sync",
            "--version-string",
            "2.528.3",
            "-p",
            "Widget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
            "--dry-run",
        ],
    )
    assert result.exit_code == 0
    assert "5 field(s) would change" in result.stdout
    assert store_file.read_text() == before


def test_sync_json_output(
    runner: CliRunner,
    store_file: Path,
    no_config: str,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger="productsync")
    result = runner.invoke(
        app,
        [
            "sync",
            "--version-string",
            "2.528.3",
            "-p",
            "Widget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
            "--json",
        ],
    )
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["display_name"] == "Widget 2.528.3"
    assert data["encoded"] == 0x02FF14A3
    assert data["display_version"] == "2.255.5283"
    assert data["ok"] is True
    statuses = {(row["group"], row["field"]): row["status"] for row in data["fields"]}
    assert statuses[("catalog", "ProductName")] == "updated"
    assert statuses[("uninstall", "VersionMajor")] == "unchanged"
    assert len(data["fields"]) == 7


def test_sync_uses_config_file(
    runner: CliRunner, store_file: Path, tmp_path: Path
) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        yaml.safe_dump({"product_name": "Widget", "store_file": str(store_file)})
    )
    result = runner.invoke(
        app, ["sync", "--version-string", "2.528.3", "-c", str(config)]
    )
    assert result.exit_code == 0
    data = yaml.safe_load(store_file.read_text())
    assert data[CATALOG_PARENT]["7C4F"]["Version"] == 0x02FF14A3


def test_sync_reports_write_failures(runner: CliRunner, no_config: str) -> None:
    class ReadOnlyUninstall(MemoryStore):
        def set_field(self, record: Record, name: str, value: Any) -> None:
            if record.parent == UNINSTALL_PARENT:
                raise StoreWriteFailure(record.path, name, value)
            super().set_field(record, name, value)

    store = ReadOnlyUninstall(RECORDS)
    with patch("productsync.cli.open_store", return_value=store):
        result = runner.invoke(
            app,
            ["sync", "--version-string", "2.528.3", "-p", "Widget", "-c", no_config],
        )
    assert result.exit_code == 1
    assert store.data[CATALOG_PARENT]["7C4F"]["Version"] == 0x02FF14A3


def test_sync_registry_unavailable(runner: CliRunner, no_config: str) -> None:
    with patch(
        "productsync.cli.RegistryStore",
        side_effect=ProductSyncError("The Windows registry is not available"),
    ):
        result = runner.invoke(
            app, ["sync", "--version-string", "2.528.3", "-c", no_config]
        )
    assert result.exit_code == 1


def test_show_command(runner: CliRunner, store_file: Path, no_config: str) -> None:
    result = runner.invoke(
        app,
        [
            "show",
            "-p",
            "Widget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
            "--json",
        ],
    )
    assert result.exit_code == 0
    records = json.loads(result.stdout)
    assert [r["group"] for r in records] == ["catalog", "uninstall"]
    assert records[0]["fields"] == {
        "ProductName": "Widget 2.400.1",
        "Version": 0x02FF0FA1,
    }
    assert records[1]["fields"]["DisplayVersion"] == "2.255.4001"


def test_show_command_not_found(
    runner: CliRunner, store_file: Path, no_config: str
) -> None:
    result = runner.invoke(
        app, ["show", "-p", "Gadget", "--store-file", str(store_file), "-c", no_config]
    )
    assert result.exit_code == 1


@pytest.fixture
def restore_root_logging() -> Any:
    """Put the Rich log handler back after a test reconfigures root logging."""
    root = logging.getLogger()
    rich_handlers = [h for h in root.handlers if isinstance(h, RichHandler)]
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in rich_handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_json_logs_are_valid_json(
    runner: CliRunner, store_file: Path, no_config: str, restore_root_logging: Any
) -> None:
    """Registry paths with backslashes and quoted values survive as JSON lines."""
    result = runner.invoke(
        app,
        [
            "--json",
            "sync",
            "--version-string",
            "2.528.3",
            "-p",
            "Widget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
        ],
    )
    assert result.exit_code == 0

    lines = [
        line for line in result.stdout.splitlines() if line.startswith('{"timestamp"')
    ]
    assert lines
    entries = [json.loads(line) for line in lines]
    assert all(entry["level"] == "INFO" for entry in entries)
    updated = [e["message"] for e in entries if e["message"].startswith("Updated ")]
    assert any(
        f"{CATALOG_PARENT}\\7C4F\\ProductName: 'Widget 2.400.1'" in message
        for message in updated
    )


def test_sync_archive_is_directory(
    runner: CliRunner, store_file: Path, no_config: str, tmp_path: Path
) -> None:
    before = store_file.read_text()
    result = runner.invoke(
        app,
        [
            "sync",
            "-a",
            str(tmp_path),
            "-p",
            "Widget",
            "--store-file",
            str(store_file),
            "-c",
            no_config,
        ],
    )
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert store_file.read_text() == before


def test_show_registry_read_denied(runner: CliRunner, no_config: str) -> None:
    api = MagicMock()
    api.OpenKey.side_effect = PermissionError("Access is denied")
    with patch("productsync.cli.RegistryStore", lambda: RegistryStore(api=api)):
        result = runner.invoke(app, ["show", "-c", no_config])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
