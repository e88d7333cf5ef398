from __future__ import annotations

import logging
import threading
from typing import Optional

from calmirror.config_manager import ConfigManager
from calmirror.sync_engine import SyncEngine


logger = logging.getLogger(__name__)


class SyncScheduler:
    """Periodic trigger for ``SyncEngine.run_once``."""

    def __init__(self, sync_engine: SyncEngine, config_manager: ConfigManager) -> None:
        self.sync_engine = sync_engine
        self.config_manager = config_manager
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._manual_trigger_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="calmirror-sync-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._manual_trigger_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    def trigger_manual(self) -> None:
        self._manual_trigger_event.set()

    def _loop(self) -> None:
        self._run("startup")

        while not self._stop_event.is_set():
            interval_seconds = max(30, int(self.config_manager.load().sync.interval_seconds))
            manual = self._manual_trigger_event.wait(timeout=interval_seconds)
            self._manual_trigger_event.clear()
            if self._stop_event.is_set():
                break
            self._run("manual" if manual else "scheduled")

    def _run(self, trigger: str) -> None:
        result = self.sync_engine.run_once(trigger=trigger)
        logger.info("Sync run %s (%s): %s", result.run_id, trigger, result.status)
