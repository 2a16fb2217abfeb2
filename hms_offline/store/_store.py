from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any, TypeVar

from .. import db
from ..errors import StorageError
from . import metadata as store_metadata
from . import queue as store_queue
from . import records as store_records
from .types import MetadataStatus, SyncMetadata, SyncOperation

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalStore:
    """Durable per-entity-type record storage plus the pending sync queue.

    Every public call is its own SQLite transaction unless it runs inside
    ``transaction()``, in which case all writes commit or roll back together.
    The connection is shared across threads and guarded by a re-entrant lock.
    """

    def __init__(self, db_path: Path | str = db.DEFAULT_DB_PATH) -> None:
        self.db_path = Path(db_path).expanduser()
        self._lock = threading.RLock()
        self._tx_depth = 0
        self.conn = db.connect(self.db_path, check_same_thread=False)
        try:
            db.initialize_schema(self.conn)
        except Exception:
            self.conn.close()
            raise
        logger.debug("local store opened at %s", self.db_path)

    @classmethod
    def open(cls, db_path: Path | str = db.DEFAULT_DB_PATH) -> LocalStore:
        return cls(db_path)

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def __enter__(self) -> LocalStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def schema_version(self) -> int:
        return self._read(db.schema_version)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[LocalStore]:
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield self
                finally:
                    self._tx_depth -= 1
                return
            self._tx_depth = 1
            try:
                self.conn.execute("BEGIN IMMEDIATE")
                yield self
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageError(str(exc)) from exc
            except BaseException:
                self._rollback()
                raise
            else:
                try:
                    self.conn.commit()
                except sqlite3.Error as exc:
                    self._rollback()
                    raise StorageError(str(exc)) from exc
            finally:
                self._tx_depth = 0

    def _rollback(self) -> None:
        with contextlib.suppress(sqlite3.Error):
            self.conn.rollback()

    def _read(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._lock:
            try:
                return fn(self.conn)
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    # Records

    def put(self, store: str, record: dict[str, Any]) -> None:
        with self.transaction():
            store_records.put_record(self.conn, store, record)

    def put_many(self, store: str, records: Iterable[dict[str, Any]]) -> int:
        with self.transaction():
            count = store_records.put_records(self.conn, store, records)
        logger.debug("saved %s records to %s", count, store)
        return count

    def get(self, store: str, record_id: str) -> dict[str, Any] | None:
        return self._read(lambda conn: store_records.get_record(conn, store, record_id))

    def get_all(self, store: str) -> list[dict[str, Any]]:
        return self._read(lambda conn: store_records.get_all_records(conn, store))

    def local_saved_at(self, store: str, record_id: str) -> int | None:
        return self._read(lambda conn: store_records.local_saved_at(conn, store, record_id))

    def delete(self, store: str, record_id: str) -> None:
        with self.transaction():
            store_records.delete_record(self.conn, store, record_id)

    def clear(self, store: str) -> None:
        with self.transaction():
            store_records.clear_store(self.conn, store)
        logger.info("cleared local store %s", store)

    def find_by_index(self, store: str, index: str, value: Any) -> list[dict[str, Any]]:
        return self._read(lambda conn: store_records.find_by_index(conn, store, index, value))

    def counts(self) -> dict[str, int]:
        return self._read(
            lambda conn: {
                store: store_records.count_records(conn, store) for store in db.STORES.values()
            }
        )

    def storage_estimate(self) -> dict[str, Any]:
        usage = 0
        for suffix in ("", "-wal", "-shm"):
            path = self.db_path.with_name(self.db_path.name + suffix)
            with contextlib.suppress(OSError):
                usage += path.stat().st_size
        return {"usage": usage, "path": str(self.db_path)}

    def export_all(self) -> dict[str, list[dict[str, Any]]]:
        return self._read(
            lambda conn: {
                store: store_records.get_all_records(conn, store) for store in db.DOMAIN_STORES
            }
        )

    def import_data(self, data: dict[str, list[dict[str, Any]]]) -> dict[str, int]:
        imported: dict[str, int] = {}
        with self.transaction():
            for store, items in data.items():
                if store not in db.DOMAIN_STORES:
                    logger.warning("skipping unknown store %s during import", store)
                    continue
                imported[store] = store_records.put_records(self.conn, store, items or [])
        return imported

    # Sync queue

    def enqueue(
        self,
        op_type: str,
        store: str,
        entity_id: str,
        data: dict[str, Any] | None = None,
    ) -> SyncOperation:
        with self.transaction():
            operation = store_queue.enqueue_operation(
                self.conn, op_type=op_type, store=store, entity_id=entity_id, data=data
            )
        logger.debug("queued for sync: %s %s/%s", operation.type, store, entity_id)
        return operation

    def list_pending(self, *, store: str | None = None) -> list[SyncOperation]:
        return self._read(lambda conn: store_queue.list_pending_operations(conn, store=store))

    def get_operation(self, operation_id: str) -> SyncOperation | None:
        return self._read(lambda conn: store_queue.get_operation(conn, operation_id))

    def remove(self, operation_id: str) -> None:
        with self.transaction():
            store_queue.remove_operation(self.conn, operation_id)

    def update(
        self,
        operation_id: str,
        *,
        retry_count: int | None = None,
        last_error: str | None = None,
    ) -> bool:
        with self.transaction():
            return store_queue.update_operation(
                self.conn, operation_id, retry_count=retry_count, last_error=last_error
            )

    def discard(self, operation_id: str) -> bool:
        with self.transaction():
            existing = store_queue.get_operation(self.conn, operation_id)
            if existing is None:
                return False
            store_queue.remove_operation(self.conn, operation_id)
        logger.warning(
            "discarded sync operation %s (%s %s/%s) without replay",
            operation_id,
            existing.type,
            existing.store,
            existing.entity_id,
        )
        return True

    def pending_count(self) -> int:
        return self._read(store_queue.count_pending)

    def parked_operations(self, *, max_retries: int) -> list[SyncOperation]:
        return self._read(
            lambda conn: store_queue.parked_operations(conn, max_retries=max_retries)
        )

    # Sync metadata

    def update_sync_metadata(self, status: MetadataStatus, error_count: int = 0) -> SyncMetadata:
        with self.transaction():
            return store_metadata.update_sync_metadata(self.conn, status, error_count)

    def get_sync_metadata(self) -> SyncMetadata | None:
        return self._read(store_metadata.get_sync_metadata)


def is_storage_available(db_path: Path | str) -> bool:
    try:
        conn = db.connect(db_path)
    except StorageError:
        return False
    try:
        conn.execute("SELECT 1").fetchone()
        return True
    except sqlite3.Error:
        return False
    finally:
        conn.close()
