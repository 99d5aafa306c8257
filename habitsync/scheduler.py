from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from habitsync.models import AppConfig, SyncResult
from habitsync.sync_engine import SyncEngine


MIN_INTERVAL_SECONDS = 60


class SyncScheduler:
    """Background thread that runs the engine at startup, on an interval, or on demand.

    A wake-up that arrives while the engine is already running (a run-now request from
    the admin API, say) is dropped rather than queued; the next tick picks up whatever
    changed in the meantime.
    """

    def __init__(
        self,
        sync_engine: SyncEngine,
        config_loader: Callable[[], AppConfig],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.sync_engine = sync_engine
        self.config_loader = config_loader
        self.logger = logger or logging.getLogger(__name__)
        self.last_result: Optional[SyncResult] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()

    @property
    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.is_alive:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="habitsync-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    def trigger_manual(self) -> None:
        self._wake_event.set()

    def _interval_seconds(self) -> int:
        return max(MIN_INTERVAL_SECONDS, int(self.config_loader().sync.interval_seconds))

    def _run(self, trigger: str) -> None:
        if self.sync_engine.is_running:
            self.logger.info("Sync already running, %s run skipped", trigger)
            return
        self.last_result = self.sync_engine.run_once(trigger=trigger)

    def _loop(self) -> None:
        self._run("startup")
        while not self._stop_event.is_set():
            woken = self._wake_event.wait(timeout=self._interval_seconds())
            self._wake_event.clear()
            if self._stop_event.is_set():
                break
            self._run("manual" if woken else "scheduled")
