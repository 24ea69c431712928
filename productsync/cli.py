"""
Command-line interface for ProductSync.

This module provides the command-line entry point for reconciling installed
product metadata with the version actually installed.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from productsync import __version__, platform
from productsync.config import ProductSyncConfig
from productsync.errors import ProductSyncError
from productsync.manifest import read_product_version
from productsync.reconciler import ReconcileReport, locate, reconcile
from productsync.store import BaseStore
from productsync.store.file import FileStore
from productsync.store.registry import RegistryStore
from productsync.version import decode, encode, parse_version

# Set up the console and logger
console = Console()
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger("productsync")

# Create the Typer app
app = typer.Typer(
    help="Keep installed-product registry metadata in step with the real version.",
    add_completion=False,
)


class JsonLogFormatter(logging.Formatter):
    """Render each log record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry).decode()


def log_error(message: str) -> None:
    """Log an error message to both logger and console."""
    logger.error(message)
    console.print(f"[red]{message}[/red]")
    return None


def print_json(data: Any) -> None:
    """Print *data* as indented JSON on stdout."""
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def load_config(config: Optional[str]) -> ProductSyncConfig:
    """Load the configuration file, from *config* if given."""
    return ProductSyncConfig.load(Path(config).expanduser() if config else None)


def resolve_archive(archive: Optional[str], cfg: ProductSyncConfig) -> Path:
    """
    Work out which product archive to read the version from.

    The order of precedence is:
    1. Command-line argument
    2. Environment variable
    3. Configuration file
    4. Platform default
    """
    path = (
        archive
        or os.environ.get("PRODUCTSYNC_ARCHIVE")
        or cfg.archive
        or platform.default_archive_path()
    )
    return Path(path).expanduser()


def open_store(store_file: Optional[str], cfg: ProductSyncConfig) -> BaseStore:
    """Open the file store when one is configured, the registry otherwise."""
    path = store_file or cfg.store_file
    if path:
        logger.debug(f"Using file store {path}")
        return FileStore(Path(path).expanduser())
    logger.debug("Using the Windows registry")
    return RegistryStore()


def report_rows(report: ReconcileReport) -> List[Dict[str, Any]]:
    """Flatten a report into one row per reconciled field."""
    failed = {(f.group, f.field): f for f in report.failed}
    rows = []
    for (group, name), value in sorted(report.desired.items()):
        key = (group, name)
        if key in failed:
            status = "failed"
        elif key in report.changed:
            status = "updated"
        elif key in report.pending:
            status = "pending"
        else:
            status = "unchanged"
        row: Dict[str, Any] = {
            "group": group,
            "field": name,
            "value": value,
            "status": status,
        }
        if key in report.pending:
            row["current"] = report.pending[key][0]
        if key in failed:
            row["error"] = str(failed[key])
        rows.append(row)
    return rows


@app.callback()
def callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output."
    ),
    json: bool = typer.Option(False, "--json", help="Output logs in JSON format."),
    version: bool = typer.Option(
        False, "--version", help="Show the application version and exit."
    ),
) -> None:
    """
    ProductSync: read the true version, encode it, fix what drifted.
    """
    if version:
        console.print(f"ProductSync version: {__version__}")
        raise typer.Exit()

    # Configure logging level based on verbosity
    if verbose:
        logger.setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    # Configure JSON logging if requested
    if json:
        for handler in logging.root.handlers[:]:
            logging.root.removeHandler(handler)
        json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(JsonLogFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
        logging.basicConfig(
            level=logging.INFO if not verbose else logging.DEBUG,
            handlers=[json_handler],
        )
        logger.debug("JSON logging enabled")


@app.command()
def sync(
    archive: Optional[str] = typer.Option(
        None,
        "--archive",
        "-a",
        help="Product archive to read the version from. "
        "Uses PRODUCTSYNC_ARCHIVE env var or the config file if not specified.",
    ),
    version_string: Optional[str] = typer.Option(
        None,
        "--version-string",
        help="Use this version instead of reading it from the archive.",
    ),
    product: Optional[str] = typer.Option(
        None,
        "--product",
        "-p",
        help="Product base name, also the record name prefix (default: Jenkins).",
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to the configuration file."
    ),
    store_file: Optional[str] = typer.Option(
        None,
        "--store-file",
        help="Reconcile a YAML file store instead of the Windows registry.",
    ),
    unique: bool = typer.Option(
        False, "--unique", help="Fail when more than one record matches a group."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would change without writing."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output the result in JSON format."
    ),
) -> None:
    """
    Update the product records to match the installed version.
    """
    cfg = load_config(config)
    product_name = product or cfg.product_name

    try:
        if version_string is not None:
            raw_version = version_string
            logger.info(f"Using version {raw_version} from the command line")
        else:
            archive_path = resolve_archive(archive, cfg)
            raw_version = read_product_version(
                archive_path, cfg.manifest_entry, cfg.manifest_key
            )

        # Reject a bad version before the registry or store file is opened
        parse_version(raw_version)

        store = open_store(store_file, cfg)
        report = reconcile(
            store,
            raw_version,
            product_name,
            groups=cfg.groups(product_name),
            unique=unique or cfg.require_unique,
            dry_run=dry_run,
        )
    except ProductSyncError as e:
        log_error(str(e))
        raise typer.Exit(1) from e

    rows = report_rows(report)
    if json_output:
        print_json(
            {
                "display_name": report.display_name,
                "encoded": report.encoded,
                "display_version": report.display_version,
                "dry_run": report.dry_run,
                "ok": report.ok,
                "fields": rows,
            }
        )
    else:
        title = "Pending Changes" if dry_run else "Product Records"
        table = Table(title=title)
        table.add_column("Group")
        table.add_column("Field")
        table.add_column("Value")
        table.add_column("Status")
        for row in rows:
            table.add_row(row["group"], row["field"], str(row["value"]), row["status"])
        console.print(table)

    if not report.ok:
        for failure in report.failed:
            log_error(f"  - {failure.group}: {failure}")
        raise typer.Exit(1)

    if dry_run:
        message = f"{len(report.pending)} field(s) would change"
    elif report.changed:
        message = f"Updated {len(report.changed)} field(s) for {report.display_name}"
    else:
        message = f"{report.display_name} is already up to date"
    logger.info(message)
    if not json_output:
        console.print(message)


@app.command(name="encode")
def encode_version(
    version: str = typer.Argument(..., help="Dotted version string, e.g. 2.528.3"),
    json_output: bool = typer.Option(
        False, "--json", help="Output the result in JSON format."
    ),
) -> None:
    """
    Show how a version is encoded in the installer database.
    """
    try:
        encoded = encode(parse_version(version))
    except ProductSyncError as e:
        log_error(str(e))
        raise typer.Exit(1) from e

    data = {
        "version": version,
        "encoded": encoded,
        "hex": f"0x{encoded:08X}",
        "display_version": decode(encoded),
    }
    if json_output:
        print_json(data)
    else:
        console.print(
            f"{version} -> {data['hex']} ({encoded}), displayed as "
            f"{data['display_version']}"
        )


@app.command()
def show(
    product: Optional[str] = typer.Option(
        None,
        "--product",
        "-p",
        help="Product base name, also the record name prefix (default: Jenkins).",
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to the configuration file."
    ),
    store_file: Optional[str] = typer.Option(
        None,
        "--store-file",
        help="Read a YAML file store instead of the Windows registry.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output the records in JSON format."
    ),
) -> None:
    """
    Show the product records as currently stored.
    """
    cfg = load_config(config)
    product_name = product or cfg.product_name

    records: List[Dict[str, Any]] = []
    try:
        store = open_store(store_file, cfg)
        for group in cfg.groups(product_name):
            record = locate(store, group, unique=cfg.require_unique)
            records.append(
                {
                    "group": group.label,
                    "path": record.path,
                    "fields": {
                        name: store.get_field(record, name)
                        for name in group.store_fields()
                    },
                }
            )
    except ProductSyncError as e:
        log_error(str(e))
        raise typer.Exit(1) from e

    if json_output:
        print_json(records)
        return

    for entry in records:
        table = Table(title=f"{entry['group']}: {entry['path']}")
        table.add_column("Field")
        table.add_column("Value")
        for name, value in entry["fields"].items():
            table.add_row(name, "" if value is None else str(value))
        console.print(table)


@app.command()
def version() -> None:
    """Show the application version and exit."""
    console.print(f"ProductSync version: {__version__}")


if __name__ == "__main__":
    app()
