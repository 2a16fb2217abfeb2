from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

SyncStatus = Literal["synced", "syncing", "pending", "offline", "error"]

STATUS_SYNCED: SyncStatus = "synced"
STATUS_SYNCING: SyncStatus = "syncing"
STATUS_PENDING: SyncStatus = "pending"
STATUS_OFFLINE: SyncStatus = "offline"
STATUS_ERROR: SyncStatus = "error"

StatusListener = Callable[[SyncStatus, int], None]


@dataclass(frozen=True)
class SyncState:
    status: SyncStatus
    pending_count: int
    last_sync_time: int


@dataclass(frozen=True)
class StatusDisplay:
    color: str
    text: str
    icon: str


class StatusBroadcaster:
    """Observer list for sync status transitions."""

    def __init__(self) -> None:
        self._listeners: list[StatusListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                self._listeners = [item for item in self._listeners if item is not listener]

        return _unsubscribe

    def publish(self, status: SyncStatus, pending_count: int) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(status, pending_count)
            except Exception:
                logger.exception("sync status listener failed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


def status_display(status: SyncStatus, pending_count: int) -> StatusDisplay:
    if status == STATUS_SYNCED:
        return StatusDisplay("green", "All data synced", "check")
    if status == STATUS_SYNCING:
        return StatusDisplay("blue", "Syncing...", "sync")
    if status == STATUS_PENDING:
        return StatusDisplay("yellow", f"{pending_count} pending sync", "clock")
    if status == STATUS_OFFLINE:
        return StatusDisplay("dark_orange", "Offline - data saved locally", "wifi-off")
    if status == STATUS_ERROR:
        return StatusDisplay("red", "Sync error", "alert")
    return StatusDisplay("grey50", "Unknown status", "alert")
