from __future__ import annotations

from .engine import MAX_RETRIES, SyncCoordinator, SyncResult
from .network import NetworkEvents
from .remote import STORE_TO_API_TYPE, RemoteStore
from .scheduler import BackgroundSync
from .status import (
    STATUS_ERROR,
    STATUS_OFFLINE,
    STATUS_PENDING,
    STATUS_SYNCED,
    STATUS_SYNCING,
    StatusDisplay,
    SyncState,
    SyncStatus,
    status_display,
)

__all__ = [
    "MAX_RETRIES",
    "STATUS_ERROR",
    "STATUS_OFFLINE",
    "STATUS_PENDING",
    "STATUS_SYNCED",
    "STATUS_SYNCING",
    "STORE_TO_API_TYPE",
    "BackgroundSync",
    "NetworkEvents",
    "RemoteStore",
    "StatusDisplay",
    "SyncCoordinator",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    "status_display",
]
