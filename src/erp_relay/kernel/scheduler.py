"""
RecurringTimer - fixed-interval background loop

Drives both the simulator's live ticks and the extractor's poll cycle.
Each firing runs to completion before the next wait starts, so a slow tick
never overlaps itself; stopping waits for an in-flight firing to finish.
"""

import threading
from collections.abc import Callable

from erp_relay.kernel.logging import get_logger

logger = get_logger(__name__)


class RecurringTimer:
    """
    Runs `action` every `interval_seconds` on a daemon thread

    Exceptions raised by the action are logged and the loop keeps going:
    the next firing is the recovery path.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        action: Callable[[], object],
        *,
        run_immediately: bool = False,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.action = action
        self.run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.fired = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Timer started", timer=self.name, interval_seconds=self.interval_seconds)

    def stop(self, timeout: float | None = 30.0) -> None:
        """Signal the loop to exit and wait for the current firing to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Timer did not stop in time", timer=self.name, timeout=timeout)
            self._thread = None
        logger.info("Timer stopped", timer=self.name, fired=self.fired)

    def _run(self) -> None:
        if self.run_immediately:
            self._fire()
        while not self._stop_event.wait(self.interval_seconds):
            self._fire()

    def _fire(self) -> None:
        self.fired += 1
        try:
            self.action()
        except Exception:
            logger.exception("Timer action failed", timer=self.name, firing=self.fired)
