from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .store import OP_CREATE, OP_DELETE, OP_UPDATE, SyncOperation
from .store.records import now_ms
from .sync.engine import SyncCoordinator
from .sync.status import StatusListener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveResult:
    success: bool
    local_only: bool
    operation: SyncOperation | None = None


def _try_remote(
    coordinator: SyncCoordinator,
    op_type: str,
    store: str,
    entity_id: str,
    data: dict[str, Any] | None,
) -> bool:
    probe = SyncOperation(
        id="",
        type=op_type,
        store=store,
        entity_id=entity_id,
        data=data,
        timestamp=now_ms(),
    )
    error = coordinator.replay_now(probe)
    if error is None:
        return True
    logger.info("immediate sync of %s/%s failed, will retry later: %s", store, entity_id, error)
    return False


def _queue(
    coordinator: SyncCoordinator,
    op_type: str,
    store: str,
    entity_id: str,
    data: dict[str, Any] | None,
) -> SaveResult:
    operation = coordinator.store.enqueue(op_type, store, entity_id, data)
    coordinator.mark_pending()
    return SaveResult(success=True, local_only=True, operation=operation)


def offline_first_save(
    coordinator: SyncCoordinator,
    store: str,
    record: dict[str, Any],
    *,
    sync_now: bool = False,
) -> SaveResult:
    """Persist ``record`` locally and make sure it eventually reaches the remote.

    The local write and the queue entry commit in one transaction. With
    ``sync_now`` the remote create is attempted first and nothing is queued
    when it succeeds.
    """

    local = coordinator.store
    if sync_now:
        local.put(store, record)
        if _try_remote(coordinator, OP_CREATE, store, record["id"], record):
            return SaveResult(success=True, local_only=False)
        return _queue(coordinator, OP_CREATE, store, record["id"], record)

    with local.transaction():
        local.put(store, record)
        operation = local.enqueue(OP_CREATE, store, record["id"], record)
    logger.debug("saved locally: %s/%s", store, record["id"])
    coordinator.mark_pending()
    return SaveResult(success=True, local_only=True, operation=operation)


def offline_first_update(
    coordinator: SyncCoordinator,
    store: str,
    record_id: str,
    data: dict[str, Any],
    *,
    sync_now: bool = False,
) -> SaveResult:
    local = coordinator.store
    with local.transaction():
        existing = local.get(store, record_id)
        if existing is not None:
            payload = {**existing, **data, "id": record_id}
            local.put(store, payload)
        else:
            logger.warning("no local %s/%s to update, queueing partial data", store, record_id)
            payload = dict(data)
        if not sync_now:
            operation = local.enqueue(OP_UPDATE, store, record_id, payload)
    if sync_now:
        if _try_remote(coordinator, OP_UPDATE, store, record_id, payload):
            return SaveResult(success=True, local_only=False)
        return _queue(coordinator, OP_UPDATE, store, record_id, payload)
    coordinator.mark_pending()
    return SaveResult(success=True, local_only=True, operation=operation)


def offline_first_delete(
    coordinator: SyncCoordinator,
    store: str,
    record_id: str,
    *,
    sync_now: bool = False,
) -> SaveResult:
    local = coordinator.store
    if sync_now:
        local.delete(store, record_id)
        if _try_remote(coordinator, OP_DELETE, store, record_id, None):
            return SaveResult(success=True, local_only=False)
        return _queue(coordinator, OP_DELETE, store, record_id, None)

    with local.transaction():
        local.delete(store, record_id)
        operation = local.enqueue(OP_DELETE, store, record_id)
    coordinator.mark_pending()
    return SaveResult(success=True, local_only=True, operation=operation)


def subscribe_to_sync_status(
    coordinator: SyncCoordinator, listener: StatusListener
) -> Callable[[], None]:
    return coordinator.subscribe(listener)


class StoreBinding:
    """Save-now-sync-later operations bound to one entity store."""

    def __init__(self, coordinator: SyncCoordinator, store: str) -> None:
        self.coordinator = coordinator
        self.store = store

    def save(self, record: dict[str, Any], *, sync_now: bool = False) -> SaveResult:
        return offline_first_save(self.coordinator, self.store, record, sync_now=sync_now)

    def update(
        self, record_id: str, data: dict[str, Any], *, sync_now: bool = False
    ) -> SaveResult:
        return offline_first_update(
            self.coordinator, self.store, record_id, data, sync_now=sync_now
        )

    def remove(self, record_id: str, *, sync_now: bool = False) -> SaveResult:
        return offline_first_delete(self.coordinator, self.store, record_id, sync_now=sync_now)

    def get(self, record_id: str) -> dict[str, Any] | None:
        return self.coordinator.store.get(self.store, record_id)

    def list(self) -> list[dict[str, Any]]:
        return self.coordinator.store.get_all(self.store)
