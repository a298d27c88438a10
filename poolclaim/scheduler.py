"""
Scheduler: fire the claim run once at start-up and then every N seconds.

Each tick runs on its own daemon thread so a long run never delays the
timer; the RunGuard turns overlapping ticks into skips.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from poolclaim.guard import RunGuard

logger = logging.getLogger("poolclaim")


class Scheduler:
    def __init__(
        self,
        job: Callable[[], None],
        interval: float,
        guard: Optional[RunGuard] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.job = job
        self.interval = interval
        self.guard = guard or RunGuard()
        self.stop_event = stop_event or threading.Event()
        self._timer: Optional[threading.Thread] = None
        self._runs: list[threading.Thread] = []

    def tick(self) -> bool:
        """One scheduled tick. Returns True if a run was admitted."""
        logger.info(f"[cron] tick at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        try:
            return self.guard.run(self.job)
        except Exception as e:
            logger.error(f"[cron] run failed: {e}")
            logger.debug("[cron] traceback:", exc_info=True)
            return True

    def dispatch(self) -> threading.Thread:
        """Start a tick on a background thread."""
        thread = threading.Thread(target=self.tick, daemon=True, name="claim-run")
        self._runs = [t for t in self._runs if t.is_alive()]
        self._runs.append(thread)
        thread.start()
        return thread

    def _timer_loop(self) -> None:
        self.dispatch()
        while not self.stop_event.wait(self.interval):
            self.dispatch()

    def start(self) -> None:
        logger.info(f"[cron] Scheduler started (every {self.interval}s)")
        self._timer = threading.Thread(target=self._timer_loop, daemon=True, name="scheduler")
        self._timer.start()

    def stop(self, timeout: float = None) -> None:
        """Stop ticking and wait for in-flight runs to notice the stop event."""
        self.stop_event.set()
        if self._timer is not None:
            self._timer.join(timeout)
        for thread in self._runs:
            thread.join(timeout)
        logger.info("[cron] Scheduler stopped")

    def run_forever(self) -> None:
        """Start and block the calling thread until stop() is called."""
        self.start()
        while not self.stop_event.wait(1):
            pass
