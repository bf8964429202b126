"""Periodic publication of dispatcher stats."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Optional

LOGGER = logging.getLogger(__name__)

StatsProvider = Callable[[], Mapping[str, Any]]
StatsSink = Callable[[Mapping[str, Any]], None]


class StatsHeartbeat:
    """Push a stats snapshot to ``sink`` once on start and then every ``interval_seconds``."""

    def __init__(
        self,
        provider: StatsProvider,
        sink: StatsSink,
        *,
        interval_seconds: float = 5.0,
    ) -> None:
        self._provider = provider
        self._sink = sink
        self._interval = max(1.0, float(interval_seconds))
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_beat: Optional[float] = None

    @property
    def last_beat(self) -> Optional[float]:
        return self._last_beat

    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())

    def beat(self) -> None:
        """Publish one snapshot now; failures are logged and ignored."""

        try:
            self._sink(self._provider())
        except Exception:
            LOGGER.debug("Stats heartbeat failed", exc_info=True)
            return
        self._last_beat = time.monotonic()

    def start(self) -> None:
        if self.running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="framecast-heartbeat", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        thread, self._thread = self._thread, None
        self._stop_event.set()
        if thread is not None and thread.is_alive():
            thread.join(timeout=timeout)

    def _loop(self) -> None:
        self.beat()
        while not self._stop_event.wait(self._interval):
            self.beat()


__all__ = ["StatsHeartbeat"]
