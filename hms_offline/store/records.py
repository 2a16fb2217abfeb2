from __future__ import annotations

import sqlite3
import time
from collections.abc import Iterable
from typing import Any

from .. import db
from ..errors import UnknownStore


def now_ms() -> int:
    return int(time.time() * 1000)


def _record_id(record: dict[str, Any]) -> str:
    if not isinstance(record, dict):
        raise ValueError("record must be a mapping")
    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id:
        raise ValueError("record requires a non-empty string id")
    return record_id


def domain_table(store: str) -> str:
    if store not in db.DOMAIN_STORES:
        raise UnknownStore(store)
    return db.table_for(store)


def put_record(conn: sqlite3.Connection, store: str, record: dict[str, Any]) -> None:
    table = domain_table(store)
    record_id = _record_id(record)
    conn.execute(
        f"""
        INSERT INTO {table}(id, payload_json, local_saved_at)
        VALUES (?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            payload_json = excluded.payload_json,
            local_saved_at = excluded.local_saved_at
        """,
        (record_id, db.to_json(record), now_ms()),
    )


def put_records(
    conn: sqlite3.Connection, store: str, records: Iterable[dict[str, Any]]
) -> int:
    count = 0
    for record in records:
        put_record(conn, store, record)
        count += 1
    return count


def get_record(conn: sqlite3.Connection, store: str, record_id: str) -> dict[str, Any] | None:
    table = domain_table(store)
    row = conn.execute(f"SELECT payload_json FROM {table} WHERE id = ?", (record_id,)).fetchone()
    if row is None:
        return None
    return db.from_json(row["payload_json"])


def get_all_records(conn: sqlite3.Connection, store: str) -> list[dict[str, Any]]:
    table = domain_table(store)
    rows = conn.execute(f"SELECT payload_json FROM {table}").fetchall()
    return [db.from_json(row["payload_json"]) for row in rows]


def local_saved_at(conn: sqlite3.Connection, store: str, record_id: str) -> int | None:
    table = domain_table(store)
    row = conn.execute(f"SELECT local_saved_at FROM {table} WHERE id = ?", (record_id,)).fetchone()
    return int(row["local_saved_at"]) if row else None


def delete_record(conn: sqlite3.Connection, store: str, record_id: str) -> None:
    table = domain_table(store)
    conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))


def clear_store(conn: sqlite3.Connection, store: str) -> None:
    conn.execute(f"DELETE FROM {db.table_for(store)}")


def find_by_index(
    conn: sqlite3.Connection, store: str, index: str, value: Any
) -> list[dict[str, Any]]:
    table = domain_table(store)
    declared = db.STORE_INDEXES.get(store, {})
    if index not in declared:
        raise ValueError(f"no index {index!r} on store {store}")
    field, _unique = declared[index]
    rows = conn.execute(
        f"SELECT payload_json FROM {table} WHERE json_extract(payload_json, '$.{field}') = ?",
        (value,),
    ).fetchall()
    return [db.from_json(row["payload_json"]) for row in rows]


def count_records(conn: sqlite3.Connection, store: str) -> int:
    row = conn.execute(f"SELECT COUNT(*) AS n FROM {db.table_for(store)}").fetchone()
    return int(row["n"]) if row else 0
