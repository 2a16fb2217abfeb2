from __future__ import annotations

import json
from pathlib import Path

import typer
from rich import print
from rich.markup import escape

from . import __version__
from .client import OfflineClient
from .commands.store_cmds import export_cmd, import_cmd, init_db_cmd, store_stats_cmd
from .commands.sync_cmds import (
    sync_daemon_cmd,
    sync_discard_cmd,
    sync_now_cmd,
    sync_queue_cmd,
    sync_status_cmd,
)
from .config import get_config_path, get_env_overrides, load_config
from .errors import StorageUnavailable
from .logging_setup import configure_logging
from .store import LocalStore

app = typer.Typer(help="hms-offline: offline-first storage and sync for the health centre client")
sync_app = typer.Typer(help="Replay queued changes against the server")
store_app = typer.Typer(help="Local store maintenance")
config_app = typer.Typer(help="Configuration")
app.add_typer(sync_app, name="sync")
app.add_typer(store_app, name="store")
app.add_typer(config_app, name="config")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(load_config().log_level, verbose=verbose)


def _store(db_path: str | None) -> LocalStore:
    try:
        return LocalStore(db_path or load_config().db_path)
    except StorageUnavailable as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


def _client(db_path: str | None) -> OfflineClient:
    try:
        return OfflineClient.from_config(db_path=db_path)
    except StorageUnavailable as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


@app.command("init-db")
def init_db(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Create the local database (no-op if it already exists)."""

    init_db_cmd(store_from_path=_store, db_path=db_path)


@app.command("status")
def status(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show sync status and queue size."""

    sync_status_cmd(client_from_path=_client, db_path=db_path)


@app.command("version")
def version() -> None:
    """Print the installed version."""

    print(__version__)


@sync_app.command("now")
def sync_now(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Replay the pending queue once."""

    sync_now_cmd(client_from_path=_client, db_path=db_path)


@sync_app.command("daemon")
def sync_daemon(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    interval: float = typer.Option(None, help="Seconds between sync ticks"),
) -> None:
    """Run background sync in the foreground."""

    sync_daemon_cmd(client_from_path=_client, db_path=db_path, interval_s=interval)


@sync_app.command("queue")
def sync_queue(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    store: str = typer.Option(None, help="Only show operations for this store"),
    json_output: bool = typer.Option(False, "--json", help="Print operations as JSON"),
) -> None:
    """List pending sync operations."""

    sync_queue_cmd(
        client_from_path=_client, db_path=db_path, store=store, json_output=json_output
    )


@sync_app.command("discard")
def sync_discard(
    operation_id: str = typer.Argument(..., help="Sync operation id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Drop a queued operation without sending it."""

    sync_discard_cmd(
        client_from_path=_client, db_path=db_path, operation_id=operation_id, yes=yes
    )


@store_app.command("stats")
def store_stats(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show record counts and database size."""

    store_stats_cmd(store_from_path=_store, db_path=db_path)


@store_app.command("export")
def store_export(
    output: Path = typer.Argument(..., help="Backup file to write"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Export all local records to JSON."""

    export_cmd(store_from_path=_store, db_path=db_path, output=output)


@store_app.command("import")
def store_import(
    input_path: Path = typer.Argument(..., help="Backup file to read"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Restore local records from a JSON backup."""

    import_cmd(store_from_path=_store, db_path=db_path, input_path=input_path)


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration."""

    cfg = load_config()
    print(f"Config file: {escape(str(get_config_path()))}")
    overrides = get_env_overrides()
    if overrides:
        print(f"Environment overrides: {', '.join(sorted(overrides))}")
    typer.echo(json.dumps(cfg.to_dict(), indent=2))
