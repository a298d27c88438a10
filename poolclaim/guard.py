"""
Single-flight guard: at most one claim run at a time.

A tick that finds a run in progress is skipped, never queued.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable

logger = logging.getLogger("poolclaim")


class RunGuard:
    def __init__(self):
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        """Take the run flag if it is free. Never blocks."""
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @contextmanager
    def admit(self):
        """Yield True if this caller holds the flag, False if it must skip."""
        acquired = self.try_acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()

    def run(self, job: Callable[[], None]) -> bool:
        """Run *job* unless another run holds the flag. Returns whether it ran."""
        with self.admit() as admitted:
            if not admitted:
                logger.info("[cron] Previous run still in progress, skipping this tick")
                return False
            job()
            return True
