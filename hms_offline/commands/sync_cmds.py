from __future__ import annotations

import datetime as dt
import json
import threading

import typer
from rich import print
from rich.markup import escape

from hms_offline.errors import HmsOfflineError
from hms_offline.sync.status import status_display


def _format_ms(value: int | None) -> str:
    if not value:
        return "never"
    return dt.datetime.fromtimestamp(value / 1000, tz=dt.UTC).isoformat(timespec="seconds")


def sync_status_cmd(*, client_from_path, db_path: str | None) -> None:
    """Show sync status, queue size and last pass outcome."""

    client = client_from_path(db_path)
    try:
        state = client.initialize()
        metadata = client.store.get_sync_metadata()
        parked = client.store.parked_operations(max_retries=client.coordinator.max_retries)
    finally:
        client.close()
    display = status_display(state.status, state.pending_count)
    print(f"[{display.color}]{display.text}[/{display.color}]")
    print(f"- Status: {state.status}")
    print(f"- Pending operations: {state.pending_count}")
    print(f"- Parked operations: {len(parked)}")
    if metadata is None:
        print("- Last sync: never")
        return
    print(f"- Last sync: {_format_ms(metadata['last_sync_time'])}")
    print(f"- Last result: {metadata['status']} (errors {metadata['error_count']})")


def sync_now_cmd(*, client_from_path, db_path: str | None) -> None:
    """Replay the pending queue once."""

    client = client_from_path(db_path)
    try:
        client.initialize()
        result = client.sync_now()
        state = client.state()
    except HmsOfflineError as exc:
        print(f"[red]Sync failed: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        client.close()
    display = status_display(state.status, state.pending_count)
    print(f"Processed {result.processed}, failed {result.failed}")
    print(f"[{display.color}]{display.text}[/{display.color}]")


def sync_daemon_cmd(
    *,
    client_from_path,
    db_path: str | None,
    interval_s: float | None,
    stop_event: threading.Event | None = None,
) -> None:
    """Run background sync in the foreground until interrupted."""

    client = client_from_path(db_path)
    stop = stop_event or threading.Event()

    def _report(status: str, count: int) -> None:
        display = status_display(status, count)  # type: ignore[arg-type]
        print(f"[{display.color}]{status}[/{display.color}] pending={count}")

    try:
        client.initialize()
        unsubscribe = client.subscribe(_report)
        client.start_background_sync(interval_s)
        try:
            while not stop.wait(1.0):
                continue
        except KeyboardInterrupt:
            print("Stopping background sync")
        finally:
            unsubscribe()
            client.stop_background_sync()
    finally:
        client.close()


def sync_queue_cmd(
    *, client_from_path, db_path: str | None, store: str | None, json_output: bool = False
) -> None:
    """List pending sync operations oldest-first."""

    client = client_from_path(db_path)
    try:
        operations = client.store.list_pending(store=store)
        max_retries = client.coordinator.max_retries
    finally:
        client.close()
    if json_output:
        typer.echo(json.dumps([op.to_dict() for op in operations], ensure_ascii=False, indent=2))
        return
    if not operations:
        print("No pending sync operations")
        return
    for op in operations:
        parked = " [red]parked[/red]" if op.retry_count >= max_retries else ""
        error = f" last_error={escape(op.last_error)}" if op.last_error else ""
        print(
            f"- {escape(op.id)} {op.type} {escape(op.store)}/{escape(op.entity_id)} "
            f"queued={_format_ms(op.timestamp)} retries={op.retry_count}{parked}{error}"
        )


def sync_discard_cmd(
    *, client_from_path, db_path: str | None, operation_id: str, yes: bool
) -> None:
    """Drop one operation from the queue without sending it."""

    client = client_from_path(db_path)
    try:
        operation = client.store.get_operation(operation_id)
        if operation is None:
            print(f"[yellow]No pending operation {escape(operation_id)}[/yellow]")
            raise typer.Exit(code=1)
        if not yes:
            typer.confirm(
                f"Discard {operation.type} {operation.store}/{operation.entity_id}? "
                "The change will never reach the server",
                abort=True,
            )
        client.store.discard(operation_id)
    finally:
        client.close()
    print(f"Discarded {escape(operation_id)}")
