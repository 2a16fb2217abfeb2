from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from hms_offline.errors import NetworkError
from hms_offline.store import LocalStore, SyncOperation
from hms_offline.sync.engine import SyncCoordinator


class FakeRemote:
    """In-memory stand-in for the clinic server."""

    def __init__(self, *, fail: bool = False, reachable: bool = True) -> None:
        self.fail = fail
        self.reachable = reachable
        self.calls: list[tuple[str, str, str, dict | None]] = []
        self.errors: dict[str, Exception] = {}
        self.probes = 0

    def apply(self, operation: SyncOperation) -> None:
        self.calls.append((operation.type, operation.store, operation.entity_id, operation.data))
        error = self.errors.get(operation.entity_id)
        if error is not None:
            raise error
        if self.fail:
            raise NetworkError("connection refused")

    def is_reachable(self) -> bool:
        self.probes += 1
        return self.reachable


def wait_for(condition: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "HMS_OFFLINE_REMOTE_URL",
        "HMS_OFFLINE_DB",
        "HMS_OFFLINE_SYNC_INTERVAL_S",
        "HMS_OFFLINE_SYNC_MAX_INTERVAL_S",
        "HMS_OFFLINE_REQUEST_TIMEOUT_S",
        "HMS_OFFLINE_MAX_RETRIES",
        "HMS_OFFLINE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HMS_OFFLINE_CONFIG", str(tmp_path / "config" / "config.json"))


@pytest.fixture
def store(tmp_path: Path) -> Iterator[LocalStore]:
    local = LocalStore(tmp_path / "offline.sqlite")
    try:
        yield local
    finally:
        local.close()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def coordinator(store: LocalStore, remote: FakeRemote) -> SyncCoordinator:
    return SyncCoordinator(store, remote)
