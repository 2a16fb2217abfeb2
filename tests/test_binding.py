from __future__ import annotations

import pytest
from conftest import FakeRemote

from hms_offline.binding import (
    StoreBinding,
    offline_first_delete,
    offline_first_save,
    offline_first_update,
    subscribe_to_sync_status,
)
from hms_offline.client import OfflineClient
from hms_offline.errors import StorageError
from hms_offline.store import OP_CREATE, OP_DELETE, OP_UPDATE, LocalStore
from hms_offline.sync.engine import SyncCoordinator


def test_save_writes_locally_and_queues_create(
    coordinator: SyncCoordinator, store: LocalStore, remote: FakeRemote
) -> None:
    remote.fail = True
    record = {"id": "p1", "firstName": "Ada", "ruhcCode": "RUHC-001"}

    result = offline_first_save(coordinator, "patients", record)

    assert result.success is True
    assert result.local_only is True
    assert store.get("patients", "p1") == record
    pending = store.list_pending()
    assert len(pending) == 1
    assert pending[0].type == OP_CREATE
    assert pending[0].data == record
    assert result.operation == pending[0]
    assert coordinator.state().status == "pending"
    assert coordinator.pending_count == 1
    assert remote.calls == []


def test_update_merges_and_queues_full_record(
    coordinator: SyncCoordinator, store: LocalStore
) -> None:
    store.put("patients", {"id": "p1", "firstName": "Ada", "phone": "0801"})

    offline_first_update(coordinator, "patients", "p1", {"phone": "0802"})

    merged = {"id": "p1", "firstName": "Ada", "phone": "0802"}
    assert store.get("patients", "p1") == merged
    [operation] = store.list_pending()
    assert operation.type == OP_UPDATE
    assert operation.entity_id == "p1"
    assert operation.data == merged


def test_update_without_local_record_queues_partial(
    coordinator: SyncCoordinator, store: LocalStore
) -> None:
    offline_first_update(coordinator, "vitals", "v9", {"pulse": 90})

    assert store.get("vitals", "v9") is None
    [operation] = store.list_pending()
    assert operation.data == {"pulse": 90}


def test_delete_removes_locally_and_queues_delete(
    coordinator: SyncCoordinator, store: LocalStore
) -> None:
    store.put("appointments", {"id": "a1"})

    offline_first_delete(coordinator, "appointments", "a1")

    assert store.get("appointments", "a1") is None
    [operation] = store.list_pending()
    assert operation.type == OP_DELETE
    assert operation.data is None


def test_failed_enqueue_rolls_back_local_write(
    coordinator: SyncCoordinator, store: LocalStore, monkeypatch
) -> None:
    def broken_enqueue(*args, **kwargs):
        raise StorageError("disk full")

    monkeypatch.setattr(store, "enqueue", broken_enqueue)

    with pytest.raises(StorageError):
        offline_first_save(coordinator, "patients", {"id": "p1"})
    assert store.get("patients", "p1") is None
    assert store.pending_count() == 0


def test_sync_now_skips_queue_when_remote_accepts(
    coordinator: SyncCoordinator, store: LocalStore, remote: FakeRemote
) -> None:
    result = offline_first_save(coordinator, "consultations", {"id": "c1"}, sync_now=True)

    assert result.local_only is False
    assert result.operation is None
    assert store.get("consultations", "c1") == {"id": "c1"}
    assert store.pending_count() == 0
    assert remote.calls == [("CREATE", "consultations", "c1", {"id": "c1"})]


def test_sync_now_falls_back_to_queue(
    coordinator: SyncCoordinator, store: LocalStore, remote: FakeRemote
) -> None:
    remote.fail = True
    store.put("consultations", {"id": "c1", "notes": "old"})

    update = offline_first_update(
        coordinator, "consultations", "c1", {"notes": "new"}, sync_now=True
    )
    delete = offline_first_delete(coordinator, "labRequests", "l1", sync_now=True)

    assert update.local_only is True
    assert delete.local_only is True
    assert [(op.type, op.entity_id) for op in store.list_pending()] == [
        (OP_UPDATE, "c1"),
        (OP_DELETE, "l1"),
    ]
    assert store.list_pending()[0].data == {"id": "c1", "notes": "new"}
    assert coordinator.pending_count == 2


def test_subscribe_calls_back_immediately(coordinator: SyncCoordinator) -> None:
    seen: list[tuple[str, int]] = []
    unsubscribe = subscribe_to_sync_status(
        coordinator, lambda status, count: seen.append((status, count))
    )
    assert seen == [("synced", 0)]

    offline_first_save(coordinator, "drugs", {"id": "d1"})
    assert seen[-1] == ("pending", 1)

    unsubscribe()
    offline_first_save(coordinator, "drugs", {"id": "d2"})
    assert seen[-1] == ("pending", 1)


def test_store_binding(coordinator: SyncCoordinator) -> None:
    labs = StoreBinding(coordinator, "labRequests")
    labs.save({"id": "l1", "test": "FBC"})
    labs.update("l1", {"status": "collected"})

    assert labs.get("l1") == {"id": "l1", "test": "FBC", "status": "collected"}
    assert labs.list() == [{"id": "l1", "test": "FBC", "status": "collected"}]
    labs.remove("l1")
    assert labs.get("l1") is None
    assert coordinator.pending_count == 3


def test_offline_round_trip_through_client(store: LocalStore, remote: FakeRemote) -> None:
    client = OfflineClient(store, remote, daemon_log=None)
    remote.fail = True

    client.patients.save({"id": "p1", "firstName": "Ada"})
    client.vitals.save({"id": "v1", "patientId": "p1"})
    client.patients.update("p1", {"firstName": "Adaeze"})
    client.sync_now()
    assert client.state().status == "offline"
    assert client.state().pending_count == 3

    remote.fail = False
    client.sync_now()

    assert client.state().status == "synced"
    assert [(call[0], call[2]) for call in remote.calls[3:]] == [
        ("CREATE", "p1"),
        ("CREATE", "v1"),
        ("UPDATE", "p1"),
    ]
    assert client.patients.get("p1") == {"id": "p1", "firstName": "Adaeze"}
