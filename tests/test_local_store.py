from __future__ import annotations

from pathlib import Path

import pytest

from hms_offline import db
from hms_offline.errors import StorageError, StorageUnavailable, UnknownStore
from hms_offline.store import LocalStore, is_storage_available


def test_open_creates_every_store(store: LocalStore) -> None:
    counts = store.counts()
    assert set(counts) == set(db.STORES.values())
    assert all(value == 0 for value in counts.values())
    assert store.schema_version == db.SCHEMA_VERSION


def test_reopen_keeps_records(tmp_path: Path) -> None:
    path = tmp_path / "offline.sqlite"
    with LocalStore(path) as first:
        first.put("patients", {"id": "p1", "firstName": "Ada"})
    with LocalStore.open(path) as second:
        assert second.get("patients", "p1") == {"id": "p1", "firstName": "Ada"}
        assert second.schema_version == db.SCHEMA_VERSION


def test_put_overwrites_and_stamps_saved_at(store: LocalStore) -> None:
    store.put("vitals", {"id": "v1", "pulse": 70})
    first_saved = store.local_saved_at("vitals", "v1")
    store.put("vitals", {"id": "v1", "pulse": 88})

    assert store.get("vitals", "v1") == {"id": "v1", "pulse": 88}
    assert store.get_all("vitals") == [{"id": "v1", "pulse": 88}]
    saved = store.local_saved_at("vitals", "v1")
    assert first_saved is not None and saved is not None
    assert saved >= first_saved


def test_get_missing_record_returns_none(store: LocalStore) -> None:
    assert store.get("patients", "nope") is None
    assert store.local_saved_at("patients", "nope") is None


def test_delete_missing_record_is_noop(store: LocalStore) -> None:
    store.put("drugs", {"id": "d1", "name": "Paracetamol"})
    store.delete("drugs", "missing")
    store.delete("drugs", "d1")
    store.delete("drugs", "d1")
    assert store.get_all("drugs") == []


def test_clear_empties_only_that_store(store: LocalStore) -> None:
    store.put_many("drugs", [{"id": "d1"}, {"id": "d2"}])
    store.put("rosters", {"id": "r1"})
    store.clear("drugs")
    assert store.get_all("drugs") == []
    assert store.get("rosters", "r1") == {"id": "r1"}


def test_unknown_store_is_rejected(store: LocalStore) -> None:
    with pytest.raises(UnknownStore) as excinfo:
        store.put("invoices", {"id": "i1"})
    assert excinfo.value.store == "invoices"
    with pytest.raises(ValueError):
        store.get("invoices", "i1")


def test_record_without_id_is_rejected(store: LocalStore) -> None:
    with pytest.raises(ValueError):
        store.put("patients", {"firstName": "NoId"})
    assert store.get_all("patients") == []


def test_duplicate_ruhc_code_fails_without_touching_other_stores(store: LocalStore) -> None:
    store.put("patients", {"id": "p1", "ruhcCode": "RUHC-001"})
    with pytest.raises(StorageError):
        store.put("patients", {"id": "p2", "ruhcCode": "RUHC-001"})

    assert store.get("patients", "p2") is None
    store.put("vitals", {"id": "v1", "patientId": "p1"})
    assert store.get("vitals", "v1") == {"id": "v1", "patientId": "p1"}


def test_find_by_index(store: LocalStore) -> None:
    store.put_many(
        "patients",
        [
            {"id": "p1", "ruhcCode": "RUHC-001", "matricNumber": "CSC/19/001"},
            {"id": "p2", "ruhcCode": "RUHC-002", "matricNumber": "CSC/19/001"},
            {"id": "p3", "ruhcCode": "RUHC-003", "matricNumber": "MTH/20/010"},
        ],
    )
    shared = store.find_by_index("patients", "matricNumber", "CSC/19/001")
    assert sorted(item["id"] for item in shared) == ["p1", "p2"]
    assert [item["id"] for item in store.find_by_index("patients", "ruhcCode", "RUHC-003")] == [
        "p3"
    ]
    with pytest.raises(ValueError):
        store.find_by_index("patients", "surname", "Okafor")


def test_transaction_rolls_back_every_store(store: LocalStore) -> None:
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.put("patients", {"id": "p1"})
            store.enqueue("CREATE", "patients", "p1", {"id": "p1"})
            raise RuntimeError("boom")

    assert store.get("patients", "p1") is None
    assert store.pending_count() == 0


def test_constraint_failure_inside_transaction_is_storage_error(store: LocalStore) -> None:
    store.put("patients", {"id": "p1", "ruhcCode": "RUHC-001"})
    with pytest.raises(StorageError):
        with store.transaction():
            store.put("vitals", {"id": "v1"})
            store.put("patients", {"id": "p2", "ruhcCode": "RUHC-001"})

    assert store.get("vitals", "v1") is None


def test_export_and_import(tmp_path: Path, store: LocalStore) -> None:
    store.put("patients", {"id": "p1", "ruhcCode": "RUHC-001"})
    store.put("labRequests", {"id": "l1", "test": "FBC"})
    store.enqueue("CREATE", "patients", "p1", {"id": "p1"})

    exported = store.export_all()
    assert set(exported) == set(db.DOMAIN_STORES)
    assert "syncQueue" not in exported
    assert exported["labRequests"] == [{"id": "l1", "test": "FBC"}]

    with LocalStore(tmp_path / "restored.sqlite") as restored:
        imported = restored.import_data({**exported, "invoices": [{"id": "i1"}]})
        assert imported["patients"] == 1
        assert "invoices" not in imported
        assert restored.get("labRequests", "l1") == {"id": "l1", "test": "FBC"}
        assert restored.pending_count() == 0


def test_storage_estimate_reports_file_size(store: LocalStore) -> None:
    store.put("announcements", {"id": "a1", "body": "x" * 2048})
    estimate = store.storage_estimate()
    assert estimate["path"] == str(store.db_path)
    assert estimate["usage"] > 0


def test_unusable_database_file(tmp_path: Path) -> None:
    path = tmp_path / "broken.sqlite"
    path.write_bytes(b"this is definitely not an sqlite database file" * 20)

    with pytest.raises(StorageUnavailable):
        LocalStore(path)
    assert is_storage_available(path) is False
    assert is_storage_available(tmp_path / "fresh.sqlite") is True
