from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from ..errors import OperationExceededRetries, SyncError, UnknownStore
from ..store import LocalStore, SyncOperation
from .remote import Remote
from .status import (
    STATUS_ERROR,
    STATUS_OFFLINE,
    STATUS_PENDING,
    STATUS_SYNCED,
    STATUS_SYNCING,
    StatusBroadcaster,
    StatusListener,
    SyncState,
    SyncStatus,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 5


@dataclass(frozen=True)
class SyncResult:
    processed: int
    failed: int


class SyncCoordinator:
    """Replays the pending sync queue against the remote and owns sync status.

    At most one pass runs at a time; a trigger that arrives while a pass is
    running returns ``SyncResult(0, 0)`` without touching the queue.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: Remote,
        *,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self.store = store
        self.remote = remote
        self.max_retries = max_retries
        self._status: SyncStatus = STATUS_SYNCED
        self._pending_count = 0
        self._last_sync_time = 0
        self._guard = threading.Lock()
        self._state_lock = threading.Lock()
        self._broadcaster = StatusBroadcaster()

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def pending_count(self) -> int:
        return self._pending_count

    @property
    def last_sync_time(self) -> int:
        return self._last_sync_time

    @property
    def in_progress(self) -> bool:
        return self._guard.locked()

    def state(self) -> SyncState:
        with self._state_lock:
            return SyncState(self._status, self._pending_count, self._last_sync_time)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        unsubscribe = self._broadcaster.subscribe(listener)
        state = self.state()
        listener(state.status, state.pending_count)
        return unsubscribe

    def set_status(
        self,
        status: SyncStatus,
        pending_count: int | None = None,
        *,
        last_sync_time: int | None = None,
    ) -> None:
        with self._state_lock:
            self._status = status
            if pending_count is not None:
                self._pending_count = pending_count
            if last_sync_time is not None:
                self._last_sync_time = last_sync_time
            count = self._pending_count
        self._broadcaster.publish(status, count)

    def initialize(self) -> SyncState:
        """Load queue size and last sync outcome from the local store."""

        count = self.store.pending_count()
        metadata = self.store.get_sync_metadata()
        with self._state_lock:
            self._pending_count = count
            if metadata is not None:
                self._last_sync_time = metadata["last_sync_time"]
        if count > 0 or (metadata is not None and metadata["status"] == "failed"):
            self.set_status(STATUS_PENDING, count)
        logger.info("sync coordinator initialized, pending operations: %s", count)
        return self.state()

    def mark_pending(self) -> int:
        count = self.store.pending_count()
        self.set_status(STATUS_PENDING if count else STATUS_SYNCED, count)
        return count

    def mark_offline(self) -> None:
        self.set_status(STATUS_OFFLINE, self.store.pending_count())

    def replay_now(self, operation: SyncOperation) -> str | None:
        """Send one operation without queue bookkeeping; returns the error text."""

        try:
            self.remote.apply(operation)
        except (SyncError, UnknownStore) as exc:
            return str(exc).strip() or exc.__class__.__name__
        return None

    def process_sync_queue(self) -> SyncResult:
        if not self._guard.acquire(blocking=False):
            logger.info("sync already in progress, skipping")
            return SyncResult(processed=0, failed=0)
        try:
            return self._run_pass()
        except Exception:
            logger.exception("sync pass aborted")
            self.set_status(STATUS_ERROR)
            raise
        finally:
            self._guard.release()

    def _run_pass(self) -> SyncResult:
        self.set_status(STATUS_SYNCING)
        operations = self.store.list_pending()
        if not operations:
            metadata = self.store.update_sync_metadata("success")
            self.set_status(STATUS_SYNCED, 0, last_sync_time=metadata["last_sync_time"])
            return SyncResult(processed=0, failed=0)

        logger.info("processing %s pending sync operations", len(operations))
        processed = 0
        failed = 0
        for operation in operations:
            if operation.retry_count >= self.max_retries:
                logger.warning(
                    "%s, keeping in local storage",
                    OperationExceededRetries(operation.id, operation.retry_count),
                )
                failed += 1
                continue
            error = self.replay_now(operation)
            if error is None:
                self.store.remove(operation.id)
                processed += 1
                logger.debug(
                    "synced %s %s/%s", operation.type, operation.store, operation.entity_id
                )
                continue
            self.store.update(
                operation.id,
                retry_count=operation.retry_count + 1,
                last_error=error,
            )
            failed += 1
            logger.warning("failed to sync %s: %s", operation.id, error)

        remaining = self.store.pending_count()
        if remaining == 0:
            metadata = self.store.update_sync_metadata("success")
            status: SyncStatus = STATUS_SYNCED
        elif processed > 0:
            metadata = self.store.update_sync_metadata("partial", failed)
            status = STATUS_PENDING
        else:
            metadata = self.store.update_sync_metadata("failed", failed)
            status = STATUS_OFFLINE
        self.set_status(status, remaining, last_sync_time=metadata["last_sync_time"])
        return SyncResult(processed=processed, failed=failed)
