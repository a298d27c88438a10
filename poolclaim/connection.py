"""
Connection module: decide how a run gets its browser.

  1. Chrome already exposes the remote-debugging endpoint → attach (borrowed)
  2. Otherwise quit Chrome and restart it with remote debugging → attach (borrowed)
  3. Otherwise launch a Playwright-managed browser with the saved session (owned)

A borrowed session belongs to the user's running Chrome: the run never closes
it and never writes the session file from it. Only an owned session persists
storage state and is closed at the end of the run.
"""

import os
import logging
import subprocess
import time

import requests
from playwright.sync_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright

from poolclaim.utils import get_session_path

logger = logging.getLogger("poolclaim")

PROBE_TIMEOUT = 2  # seconds
QUIT_PAUSE = 2     # seconds to let the old Chrome exit


class BrowserConnectionError(RuntimeError):
    """No usable browser could be attached or launched."""


def probe_debug_endpoint(port: int) -> bool:
    """Return True if a browser answers on the remote-debugging port."""
    try:
        resp = requests.get(f"http://127.0.0.1:{port}/json/version", timeout=PROBE_TIMEOUT)
        return resp.ok
    except requests.RequestException:
        return False


def quit_running_chrome(config: dict) -> None:
    """Ask an already-running Chrome (without debugging) to exit."""
    command = config.get("chrome_quit_command")
    if not command:
        return
    try:
        subprocess.run(command, check=False, timeout=10,
                       stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"[conn] Quit command failed: {e}")
    time.sleep(QUIT_PAUSE)


def spawn_debug_chrome(config: dict) -> bool:
    """Start Chrome with remote debugging and wait until the endpoint answers."""
    port = config["cdp_port"]
    try:
        subprocess.Popen(
            [config["chrome_executable"], f"--remote-debugging-port={port}"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        logger.warning(f"[conn] Could not start {config['chrome_executable']}: {e}")
        return False

    probes = config["chrome_ready_probes"]
    for i in range(probes):
        time.sleep(1)
        if probe_debug_endpoint(port):
            logger.info(f"[conn] Chrome started successfully ({i + 1}s)")
            return True
    logger.warning(f"[conn] Chrome did not expose port {port} after {probes} probes")
    return False


class BorrowedSession:
    """The default context of a Chrome this process attached to."""

    owned = False

    def __init__(self, browser: Browser, context: BrowserContext):
        self.browser = browser
        self.context = context
        self._opened_pages: list[Page] = []

    def acquire_page(self, target_url: str) -> Page:
        # Other tabs belong to the user; only touch the dashboard tab.
        for page in self.context.pages:
            if page.url.startswith(target_url):
                logger.info("[run] Reusing existing dashboard tab")
                return page
        page = self.context.new_page()
        self._opened_pages.append(page)
        logger.info("[run] Opened a new tab in the running Chrome")
        return page

    def persist(self, session_path: str) -> None:
        logger.debug("[conn] Borrowed browser — session file left untouched")

    def close(self) -> None:
        for page in self._opened_pages:
            try:
                if not page.is_closed():
                    page.close()
            except PlaywrightError:
                pass
        self._opened_pages.clear()


class OwnedSession:
    """A browser + context this process launched itself."""

    owned = True

    def __init__(self, browser: Browser, context: BrowserContext):
        self.browser = browser
        self.context = context

    def acquire_page(self, target_url: str) -> Page:
        if self.context.pages:
            return self.context.pages[0]
        return self.context.new_page()

    def persist(self, session_path: str) -> None:
        self.context.storage_state(path=session_path)
        logger.info(f"[conn] Session saved to: {session_path}")

    def close(self) -> None:
        try:
            self.context.close()
        finally:
            self.browser.close()


def attach(playwright: Playwright, port: int) -> BorrowedSession:
    logger.info("[conn] Connecting to existing Chrome...")
    try:
        browser = playwright.chromium.connect_over_cdp(f"http://127.0.0.1:{port}")
    except PlaywrightError as e:
        raise BrowserConnectionError(f"Could not attach to Chrome on port {port}: {e}") from e
    context = browser.contexts[0] if browser.contexts else browser.new_context()
    return BorrowedSession(browser, context)


def launch(playwright: Playwright, config: dict, headless: bool = None) -> OwnedSession:
    """Launch a fresh browser, restoring the saved session if there is one."""
    if headless is None:
        headless = config["headless"]
    logger.info(f"[conn] Launching new browser instance (headless={headless})...")

    launch_opts = {
        "headless": headless,
        "args": ["--disable-blink-features=AutomationControlled"],
    }
    if config.get("browser_channel"):
        launch_opts["channel"] = config["browser_channel"]

    try:
        browser = playwright.chromium.launch(**launch_opts)
    except PlaywrightError as e:
        raise BrowserConnectionError(f"Browser launch failed: {e}") from e

    ctx_opts = {}
    session_path = get_session_path(config)
    if os.path.exists(session_path):
        logger.info("[conn] Loading saved session...")
        ctx_opts["storage_state"] = session_path

    try:
        context = browser.new_context(**ctx_opts)
    except PlaywrightError as e:
        browser.close()
        raise BrowserConnectionError(f"Could not create browser context: {e}") from e
    context.set_default_timeout(config["default_timeout"])
    return OwnedSession(browser, context)


def open_session(playwright: Playwright, config: dict):
    """Return a BorrowedSession or OwnedSession ready for the run."""
    port = config["cdp_port"]
    if probe_debug_endpoint(port):
        return attach(playwright, port)

    if config["launch_chrome"]:
        logger.info("[conn] Starting Chrome with remote debugging...")
        quit_running_chrome(config)
        if spawn_debug_chrome(config):
            return attach(playwright, port)

    return launch(playwright, config)
