from __future__ import annotations

import sqlite3

from .records import now_ms
from .types import MetadataStatus, SyncMetadata

SYNC_STATUS_KEY = "sync_status"


def update_sync_metadata(
    conn: sqlite3.Connection, status: MetadataStatus, error_count: int = 0
) -> SyncMetadata:
    now = now_ms()
    conn.execute(
        """
        INSERT INTO sync_metadata(id, last_sync_time, status, error_count, local_saved_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            last_sync_time = excluded.last_sync_time,
            status = excluded.status,
            error_count = excluded.error_count,
            local_saved_at = excluded.local_saved_at
        """,
        (SYNC_STATUS_KEY, now, status, error_count, now),
    )
    return {
        "id": SYNC_STATUS_KEY,
        "last_sync_time": now,
        "status": status,
        "error_count": error_count,
    }


def get_sync_metadata(conn: sqlite3.Connection) -> SyncMetadata | None:
    row = conn.execute(
        "SELECT id, last_sync_time, status, error_count FROM sync_metadata WHERE id = ?",
        (SYNC_STATUS_KEY,),
    ).fetchone()
    if row is None:
        return None
    return {
        "id": str(row["id"]),
        "last_sync_time": int(row["last_sync_time"]),
        "status": row["status"],
        "error_count": int(row["error_count"]),
    }
