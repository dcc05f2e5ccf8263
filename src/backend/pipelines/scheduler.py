from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from common.rules_engine.config import SchedulerConfig
from common.rules_engine.models import PollReport

from .engine import RuleEngine


logger = logging.getLogger(__name__)


class Scheduler:
    """
    Drives `RuleEngine.evaluate_all` from a background thread.

    The loop waits on a stop event with the poll interval as timeout; a timeout polls when
    enabled, a set event ends the loop. Config is read once per iteration, so `enable`,
    `disable` and interval changes take effect on the next tick. Only one cycle runs at a
    time: a poll requested while another is in flight is dropped.
    """

    def __init__(self, engine: RuleEngine, config: Optional[SchedulerConfig] = None):
        self._engine = engine
        self._config = config or SchedulerConfig()
        self._config_lock = threading.Lock()
        self._poll_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_report: Optional[PollReport] = None
        self._last_poll_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    def config(self) -> SchedulerConfig:
        with self._config_lock:
            return self._config.model_copy()

    def is_enabled(self) -> bool:
        with self._config_lock:
            return self._config.enabled

    def enable(self) -> None:
        with self._config_lock:
            self._config = self._config.model_copy(update={"enabled": True})
        logger.info("Scheduler enabled")

    def disable(self) -> None:
        with self._config_lock:
            self._config = self._config.model_copy(update={"enabled": False})
        logger.info("Scheduler disabled")

    def update_config(self, config: SchedulerConfig) -> None:
        with self._config_lock:
            self._config = config.model_copy()
        logger.info(
            "Scheduler config updated: interval=%ss enabled=%s",
            config.poll_interval_seconds,
            config.enabled,
        )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_polling(self) -> bool:
        return self._poll_lock.locked()

    @property
    def last_report(self) -> Optional[PollReport]:
        return self._last_report

    def state(self) -> str:
        if self.is_polling:
            return "polling"
        return "enabled_idle" if self.is_enabled() else "disabled"

    def status(self) -> Dict[str, Any]:
        config = self.config()
        return {
            "state": self.state(),
            "enabled": config.enabled,
            "running": self.is_running,
            "poll_interval_seconds": config.poll_interval_seconds,
            "last_poll_at": self._last_poll_at,
            "last_error": self._last_error,
            "last_report": self._last_report,
        }

    def trigger_poll(self) -> Optional[PollReport]:
        """Run one cycle now, regardless of the enabled flag. Returns None if a cycle is already running."""
        if not self._poll_lock.acquire(blocking=False):
            logger.info("Poll already in progress; skipping")
            return None
        try:
            report = self._engine.evaluate_all()
            self._last_report = report
            self._last_error = None
            return report
        finally:
            self._last_poll_at = datetime.now(timezone.utc)
            self._poll_lock.release()

    def run(self) -> None:
        logger.info("Scheduler loop started")
        while True:
            config = self.config()
            if self._stop_event.wait(config.poll_interval_seconds):
                break
            if not config.enabled:
                logger.debug("Scheduler disabled; skipping tick")
                continue
            try:
                self.trigger_poll()
            except Exception as exc:
                self._last_error = str(exc)
                logger.exception("Poll cycle failed; will retry on next tick")
        logger.info("Scheduler loop stopped")

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="autobank-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Signal the loop and wait for it; a cycle already in progress runs to completion.

        Returns False when `timeout` expires first. The thread is kept so `start` will not
        launch a second loop beside it.
        """
        self._stop_event.set()
        if self._thread is None:
            return True
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Scheduler thread still running after %ss; a poll cycle is in progress", timeout)
            return False
        self._thread = None
        return True
