from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

from .binding import (
    SaveResult,
    StoreBinding,
    offline_first_delete,
    offline_first_save,
    offline_first_update,
)
from .config import HmsOfflineConfig, load_config
from .db import STORES
from .store import LocalStore
from .sync.engine import MAX_RETRIES, SyncCoordinator, SyncResult
from .sync.network import NetworkEvents
from .sync.remote import Remote, RemoteStore
from .sync.scheduler import DEFAULT_DAEMON_LOG, BackgroundSync
from .sync.status import StatusListener, SyncState


class OfflineClient:
    """Composition root wiring the local store, remote, coordinator and scheduler."""

    def __init__(
        self,
        store: LocalStore,
        remote: Remote,
        *,
        max_retries: int = MAX_RETRIES,
        network: NetworkEvents | None = None,
        sync_interval_s: float = 15.0,
        max_interval_s: float | None = None,
        daemon_log: Path | None = DEFAULT_DAEMON_LOG,
    ) -> None:
        self.store = store
        self.network = network or NetworkEvents()
        self.coordinator = SyncCoordinator(store, remote, max_retries=max_retries)
        self.scheduler = BackgroundSync(
            self.coordinator,
            network=self.network,
            max_interval_s=max_interval_s,
            daemon_log=daemon_log,
        )
        self.sync_interval_s = sync_interval_s

    @classmethod
    def from_config(
        cls,
        cfg: HmsOfflineConfig | None = None,
        *,
        db_path: str | None = None,
    ) -> OfflineClient:
        cfg = cfg or load_config()
        store = LocalStore(db_path or cfg.db_path)
        remote = RemoteStore(
            cfg.remote_url,
            data_path=cfg.data_path,
            health_path=cfg.health_path,
            timeout_s=cfg.request_timeout_s,
        )
        return cls(
            store,
            remote,
            max_retries=cfg.max_retries,
            sync_interval_s=cfg.sync_interval_s,
            max_interval_s=cfg.sync_max_interval_s,
            daemon_log=Path(cfg.daemon_log),
        )

    def close(self) -> None:
        self.scheduler.stop()
        self.store.close()

    def __enter__(self) -> OfflineClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def initialize(self) -> SyncState:
        return self.coordinator.initialize()

    def save(self, store: str, record: dict[str, Any], *, sync_now: bool = False) -> SaveResult:
        return offline_first_save(self.coordinator, store, record, sync_now=sync_now)

    def update(
        self, store: str, record_id: str, data: dict[str, Any], *, sync_now: bool = False
    ) -> SaveResult:
        return offline_first_update(self.coordinator, store, record_id, data, sync_now=sync_now)

    def delete(self, store: str, record_id: str, *, sync_now: bool = False) -> SaveResult:
        return offline_first_delete(self.coordinator, store, record_id, sync_now=sync_now)

    def binding(self, store: str) -> StoreBinding:
        return StoreBinding(self.coordinator, store)

    @property
    def patients(self) -> StoreBinding:
        return self.binding(STORES["PATIENTS"])

    @property
    def vitals(self) -> StoreBinding:
        return self.binding(STORES["VITALS"])

    @property
    def consultations(self) -> StoreBinding:
        return self.binding(STORES["CONSULTATIONS"])

    @property
    def appointments(self) -> StoreBinding:
        return self.binding(STORES["APPOINTMENTS"])

    @property
    def lab_requests(self) -> StoreBinding:
        return self.binding(STORES["LAB_REQUESTS"])

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        return self.coordinator.subscribe(listener)

    def state(self) -> SyncState:
        return self.coordinator.state()

    def sync_now(self) -> SyncResult:
        return self.coordinator.process_sync_queue()

    def start_background_sync(self, interval_s: float | None = None) -> None:
        self.scheduler.start(interval_s or self.sync_interval_s)

    def stop_background_sync(self) -> None:
        self.scheduler.stop()
