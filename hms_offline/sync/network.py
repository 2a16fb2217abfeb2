from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

OnlineListener = Callable[[], None]


class NetworkEvents:
    """Connectivity transitions reported by the host platform.

    ``report(True)`` after ``report(False)`` is a reconnect and fires every
    online listener once. The initial state is online.
    """

    def __init__(self, *, online: bool = True) -> None:
        self._online = online
        self._listeners: list[OnlineListener] = []
        self._lock = threading.Lock()

    @property
    def online(self) -> bool:
        return self._online

    def add_online_listener(self, listener: OnlineListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                self._listeners = [item for item in self._listeners if item is not listener]

        return _remove

    def report(self, online: bool) -> None:
        with self._lock:
            reconnected = online and not self._online
            self._online = online
            listeners = list(self._listeners) if reconnected else []
        if reconnected:
            logger.info("network back online")
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("online listener failed")
