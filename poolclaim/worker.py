"""
Worker: one complete claim-acquisition run.

connect → dashboard → login gate → poll loop (→ claims) → save session → release
"""

import logging
import threading
from typing import Optional

from playwright.sync_api import Error as PlaywrightError, sync_playwright

from poolclaim.auth import LoginTimeoutError, ensure_logged_in
from poolclaim.connection import open_session
from poolclaim.navigator import open_dashboard
from poolclaim.poller import PollResult, poll_for_requests
from poolclaim.utils import capture_diagnostics, get_session_path

logger = logging.getLogger("poolclaim")


class ClaimWorker:
    """Holds the run configuration; ``run_once`` is the scheduler's entry point."""

    def __init__(
        self,
        config: dict,
        stop_event: Optional[threading.Event] = None,
        playwright_factory=sync_playwright,
        session_factory=open_session,
    ):
        self.config = config
        self.stop_event = stop_event or threading.Event()
        self._playwright_factory = playwright_factory
        self._session_factory = session_factory
        self.last_result: Optional[PollResult] = None

    def run_once(self) -> None:
        with self._playwright_factory() as p:
            session = self._session_factory(p, self.config)
            page = None
            try:
                page = session.acquire_page(self.config["target_url"])
                open_dashboard(page, self.config["target_url"], timeout=self.config["nav_timeout"])
                login = ensure_logged_in(page, self.config)
                if login != "authenticated":
                    # Save a fresh login before polling starts
                    session.persist(get_session_path(self.config))

                result = poll_for_requests(page, self.config, stop_event=self.stop_event)
                self.last_result = result
                logger.info(
                    f"[run] Poll loop ended: {result.state.value} after {result.attempts} "
                    f"attempt(s), {result.claimed} request(s) claimed"
                )

                if not page.is_closed():
                    session.persist(get_session_path(self.config))
                logger.info("✅ Completed run successfully")
            except LoginTimeoutError as e:
                logger.error(f"[run] ❌ Login timeout: {e}")
                raise
            except Exception as e:
                logger.error(f"[run] ❌ Run failed: {e}")
                if page is not None:
                    capture_diagnostics(page, "run_failed")
                raise
            finally:
                try:
                    session.close()
                except PlaywrightError as e:
                    logger.debug(f"[run] Session close failed: {e}")
