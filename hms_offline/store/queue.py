from __future__ import annotations

import json
import sqlite3
from typing import Any
from uuid import uuid4

from .. import db
from ..errors import UnknownOperationType, UnknownStore
from .records import now_ms
from .types import OPERATION_TYPES, OP_DELETE, SyncOperation

_QUEUE_COLUMNS = "id, op_type, store, entity_id, data_json, timestamp, retry_count, last_error"


def new_operation_id(timestamp_ms: int) -> str:
    return f"sync_{timestamp_ms}_{uuid4().hex[:9]}"


def _row_to_operation(row: sqlite3.Row) -> SyncOperation:
    data_json = row["data_json"]
    data = json.loads(data_json) if data_json is not None else None
    return SyncOperation(
        id=str(row["id"]),
        type=str(row["op_type"]),
        store=str(row["store"]),
        entity_id=str(row["entity_id"]),
        data=data if isinstance(data, dict) else None,
        timestamp=int(row["timestamp"]),
        retry_count=int(row["retry_count"]),
        last_error=row["last_error"],
    )


def enqueue_operation(
    conn: sqlite3.Connection,
    *,
    op_type: str,
    store: str,
    entity_id: str,
    data: dict[str, Any] | None = None,
) -> SyncOperation:
    if op_type not in OPERATION_TYPES:
        raise UnknownOperationType(op_type)
    if store not in db.DOMAIN_STORES:
        raise UnknownStore(store)
    timestamp = now_ms()
    payload = None if op_type == OP_DELETE else data
    operation = SyncOperation(
        id=new_operation_id(timestamp),
        type=op_type,
        store=store,
        entity_id=entity_id,
        data=payload,
        timestamp=timestamp,
    )
    conn.execute(
        """
        INSERT INTO sync_queue(
            id, op_type, store, entity_id, data_json, timestamp, retry_count, last_error,
            local_saved_at
        )
        VALUES (?, ?, ?, ?, ?, ?, 0, NULL, ?)
        """,
        (
            operation.id,
            operation.type,
            operation.store,
            operation.entity_id,
            json.dumps(payload, ensure_ascii=False) if payload is not None else None,
            operation.timestamp,
            timestamp,
        ),
    )
    return operation


def list_pending_operations(
    conn: sqlite3.Connection, *, store: str | None = None
) -> list[SyncOperation]:
    if store is None:
        rows = conn.execute(
            f"SELECT {_QUEUE_COLUMNS} FROM sync_queue ORDER BY seq ASC"
        ).fetchall()
    else:
        rows = conn.execute(
            f"SELECT {_QUEUE_COLUMNS} FROM sync_queue WHERE store = ? "
            "ORDER BY seq ASC",
            (store,),
        ).fetchall()
    return [_row_to_operation(row) for row in rows]


def get_operation(conn: sqlite3.Connection, operation_id: str) -> SyncOperation | None:
    row = conn.execute(
        f"SELECT {_QUEUE_COLUMNS} FROM sync_queue WHERE id = ?", (operation_id,)
    ).fetchone()
    return _row_to_operation(row) if row else None


def remove_operation(conn: sqlite3.Connection, operation_id: str) -> None:
    conn.execute("DELETE FROM sync_queue WHERE id = ?", (operation_id,))


def update_operation(
    conn: sqlite3.Connection,
    operation_id: str,
    *,
    retry_count: int | None = None,
    last_error: str | None = None,
) -> bool:
    current = get_operation(conn, operation_id)
    if current is None:
        return False
    if retry_count is not None and retry_count < current.retry_count:
        raise ValueError("retry_count cannot decrease")
    conn.execute(
        """
        UPDATE sync_queue
        SET retry_count = ?, last_error = ?, local_saved_at = ?
        WHERE id = ?
        """,
        (
            current.retry_count if retry_count is None else retry_count,
            current.last_error if last_error is None else last_error,
            now_ms(),
            operation_id,
        ),
    )
    return True


def count_pending(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) AS n FROM sync_queue").fetchone()
    return int(row["n"]) if row else 0


def parked_operations(conn: sqlite3.Connection, *, max_retries: int) -> list[SyncOperation]:
    rows = conn.execute(
        f"SELECT {_QUEUE_COLUMNS} FROM sync_queue WHERE retry_count >= ? "
        "ORDER BY seq ASC",
        (max_retries,),
    ).fetchall()
    return [_row_to_operation(row) for row in rows]
