from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from .errors import StorageUnavailable, UnknownStore

DEFAULT_DB_PATH = Path.home() / ".hms-offline" / "offline.sqlite"

# Bump when the store set or an index changes.
SCHEMA_VERSION = 1

STORES = {
    "PATIENTS": "patients",
    "VITALS": "vitals",
    "CONSULTATIONS": "consultations",
    "APPOINTMENTS": "appointments",
    "LAB_REQUESTS": "labRequests",
    "LAB_RESULTS": "labResults",
    "PRESCRIPTIONS": "prescriptions",
    "QUEUE_ENTRIES": "queueEntries",
    "ADMISSIONS": "admissions",
    "ANNOUNCEMENTS": "announcements",
    "VOICE_NOTES": "voiceNotes",
    "MEDICAL_CERTIFICATES": "medicalCertificates",
    "REFERRAL_LETTERS": "referralLetters",
    "DISCHARGE_SUMMARIES": "dischargeSummaries",
    "DRUGS": "drugs",
    "ROSTERS": "rosters",
    "SYNC_QUEUE": "syncQueue",
    "SYNC_METADATA": "syncMetadata",
}

SYNC_QUEUE_STORE = STORES["SYNC_QUEUE"]
SYNC_METADATA_STORE = STORES["SYNC_METADATA"]

DOMAIN_STORES: tuple[str, ...] = tuple(
    name for name in STORES.values() if name not in {SYNC_QUEUE_STORE, SYNC_METADATA_STORE}
)

# Secondary indexes over record payloads: store -> {index name: (json field, unique)}.
STORE_INDEXES: dict[str, dict[str, tuple[str, bool]]] = {
    "patients": {
        "ruhcCode": ("ruhcCode", True),
        "matricNumber": ("matricNumber", False),
    },
}


def table_for(store: str) -> str:
    if store == SYNC_QUEUE_STORE:
        return "sync_queue"
    if store == SYNC_METADATA_STORE:
        return "sync_metadata"
    if store not in DOMAIN_STORES:
        raise UnknownStore(store)
    return f"store_{store}"


def connect(db_path: Path | str, check_same_thread: bool = True) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    except (OSError, sqlite3.Error) as exc:
        raise StorageUnavailable(f"cannot open local database at {path}: {exc}") from exc
    conn.row_factory = sqlite3.Row
    try:
        try:
            conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.OperationalError:
            conn.execute("PRAGMA journal_mode = DELETE")
        conn.execute("PRAGMA synchronous = NORMAL")
    except sqlite3.Error as exc:
        conn.close()
        raise StorageUnavailable(f"cannot open local database at {path}: {exc}") from exc
    return conn


def schema_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def initialize_schema(conn: sqlite3.Connection) -> None:
    statements: list[str] = []
    for store in DOMAIN_STORES:
        table = table_for(store)
        statements.append(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                payload_json TEXT NOT NULL,
                local_saved_at INTEGER NOT NULL
            );
            """
        )
        for index_name, (field, unique) in STORE_INDEXES.get(store, {}).items():
            unique_sql = "UNIQUE " if unique else ""
            statements.append(
                f"CREATE {unique_sql}INDEX IF NOT EXISTS idx_{table}_{index_name} "
                f"ON {table}(json_extract(payload_json, '$.{field}'));"
            )
    statements.append(
        """
        CREATE TABLE IF NOT EXISTS sync_queue (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            op_type TEXT NOT NULL,
            store TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            data_json TEXT,
            timestamp INTEGER NOT NULL,
            retry_count INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            local_saved_at INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_sync_queue_store ON sync_queue(store);

        CREATE TABLE IF NOT EXISTS sync_metadata (
            id TEXT PRIMARY KEY,
            last_sync_time INTEGER NOT NULL,
            status TEXT NOT NULL,
            error_count INTEGER NOT NULL DEFAULT 0,
            local_saved_at INTEGER NOT NULL
        );
        """
    )
    try:
        conn.executescript("\n".join(statements))
        if schema_version(conn) < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.commit()
    except sqlite3.Error as exc:
        raise StorageUnavailable(f"cannot create local schema: {exc}") from exc


def to_json(data: Any) -> str:
    if data is None:
        payload: Any = {}
    else:
        payload = data
    return json.dumps(payload, ensure_ascii=False)


def from_json(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}
