from __future__ import annotations

import datetime as dt
import logging
import threading
import traceback
from collections.abc import Callable
from pathlib import Path

from .engine import SyncCoordinator
from .network import NetworkEvents

logger = logging.getLogger(__name__)

DEFAULT_DAEMON_LOG = Path("~/.hms-offline/sync-daemon.log")


class BackgroundSync:
    """Drives ``SyncCoordinator`` from a worker thread.

    One pass runs immediately on ``start``; after that every interval the
    remote health endpoint is probed and a pass runs only when it answers.
    An online transition on ``network`` wakes the worker for an immediate
    pass. While the remote stays unreachable the wait doubles up to
    ``max_interval_s``.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        *,
        network: NetworkEvents | None = None,
        max_interval_s: float | None = None,
        daemon_log: Path | None = DEFAULT_DAEMON_LOG,
    ) -> None:
        self.coordinator = coordinator
        self.network = network
        self.max_interval_s = max_interval_s
        self.daemon_log = daemon_log
        self._thread: threading.Thread | None = None
        self._stop: threading.Event | None = None
        self._wake: threading.Event | None = None
        self._remove_listener: Callable[[], None] | None = None
        self.interval_s = 0.0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_s: float = 15.0) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.stop()
        self.interval_s = interval_s
        stop = threading.Event()
        wake = threading.Event()
        self._stop = stop
        self._wake = wake
        if self.network is not None:
            self._remove_listener = self.network.add_online_listener(wake.set)
        self._thread = threading.Thread(
            target=self._run,
            args=(stop, wake, interval_s),
            name="hms-offline-sync",
            daemon=True,
        )
        self._thread.start()
        logger.info("background sync started (interval %.1fs)", interval_s)

    def stop(self, timeout_s: float | None = None) -> None:
        """Stop scheduling passes; a pass already running is left to finish."""

        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        if self._stop is not None:
            self._stop.set()
        if self._wake is not None:
            self._wake.set()
        thread = self._thread
        self._thread = None
        self._stop = None
        self._wake = None
        if (
            timeout_s is not None
            and thread is not None
            and thread is not threading.current_thread()
        ):
            thread.join(timeout_s)

    def next_delay(self, current_s: float, reachable: bool) -> float:
        ceiling = self.max_interval_s
        if reachable or ceiling is None or ceiling <= self.interval_s:
            return self.interval_s
        return min(current_s * 2, ceiling)

    def tick(self) -> bool:
        """Probe the remote and replay the queue if it is reachable."""

        try:
            reachable = self.coordinator.remote.is_reachable()
            if reachable:
                self.coordinator.process_sync_queue()
            else:
                logger.info("remote unreachable, skipping replay")
                self.coordinator.mark_offline()
            return reachable
        except Exception as exc:
            self._record_failure(exc)
            return False

    def run_pass(self) -> None:
        try:
            self.coordinator.process_sync_queue()
        except Exception as exc:
            self._record_failure(exc)

    def _run(self, stop: threading.Event, wake: threading.Event, interval_s: float) -> None:
        self.run_pass()
        delay = interval_s
        while not stop.is_set():
            woke = wake.wait(delay)
            if stop.is_set():
                break
            if woke:
                wake.clear()
                logger.info("network back online, syncing")
                self.run_pass()
                continue
            reachable = self.tick()
            delay = self.next_delay(delay, reachable)

    def _record_failure(self, exc: Exception) -> None:
        tb = traceback.format_exc()
        logger.error("background sync tick failed: %s", exc)
        if self.daemon_log is not None:
            _append_sync_daemon_log(self.daemon_log, tb)


def _append_sync_daemon_log(log_path: Path, message: str) -> None:
    try:
        path = log_path.expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        ts = dt.datetime.now(dt.UTC).isoformat()
        with path.open("a", encoding="utf-8", errors="ignore") as handle:
            handle.write(f"\n[{ts}]\n{message}\n")
    except OSError:
        return
