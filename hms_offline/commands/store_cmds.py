from __future__ import annotations

import json
from pathlib import Path

import typer
from rich import print
from rich.markup import escape

from hms_offline.errors import StorageError


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f} MB"
    return f"{size / 1024 / 1024 / 1024:.1f} GB"


def init_db_cmd(*, store_from_path, db_path: str | None) -> None:
    """Create the local database (no-op if it already exists)."""

    store = store_from_path(db_path)
    try:
        path = escape(str(store.db_path))
        print(f"Initialized database at {path} (schema v{store.schema_version})")
    finally:
        store.close()


def store_stats_cmd(*, store_from_path, db_path: str | None) -> None:
    store = store_from_path(db_path)
    try:
        counts = store.counts()
        estimate = store.storage_estimate()
    finally:
        store.close()
    print("[bold]Local store[/bold]")
    print(f"- Path: {escape(estimate['path'])}")
    print(f"- Size: {_format_bytes(int(estimate['usage']))}")
    for name, count in counts.items():
        print(f"- {name}: {count}")


def export_cmd(*, store_from_path, db_path: str | None, output: Path) -> None:
    """Write every domain store to a JSON backup file."""

    store = store_from_path(db_path)
    try:
        data = store.export_all()
    finally:
        store.close()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    total = sum(len(items) for items in data.values())
    print(f"Exported {total} records to {escape(str(output))}")


def import_cmd(*, store_from_path, db_path: str | None, input_path: Path) -> None:
    """Restore records from a JSON backup; nothing is queued for sync."""

    try:
        data = json.loads(input_path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        print(f"[red]Cannot read backup {escape(str(input_path))}: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    if not isinstance(data, dict):
        print("[red]Backup must be a JSON object keyed by store name[/red]")
        raise typer.Exit(code=1)
    store = store_from_path(db_path)
    try:
        imported = store.import_data(data)
    except (StorageError, ValueError) as exc:
        print(f"[red]Import failed: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        store.close()
    total = sum(imported.values())
    print(f"Imported {total} records into {len(imported)} stores")
