"""
Navigator module: load the help-request dashboard and keep the Open Pool tab selected.
"""

import logging
from playwright.sync_api import Error as PlaywrightError, Page

from poolclaim.actions import click_with_retry, find_first

logger = logging.getLogger("poolclaim")

WAIT_STRATEGY = "domcontentloaded"


def open_dashboard(page: Page, url: str, timeout: int = 60_000) -> None:
    """Navigate to the dashboard and wait for the network to go quiet."""
    logger.info(f"[run] goto dashboard: {url}")
    page.goto(url, wait_until=WAIT_STRATEGY, timeout=timeout)
    page.wait_for_load_state("networkidle", timeout=timeout)


def reload_dashboard(page: Page, config: dict) -> None:
    """Reload for fresh data. Holding Shift asks for a cache-bypassing reload."""
    if not config["hard_reload"]:
        page.reload(wait_until="networkidle", timeout=config["reload_timeout"])
        return

    page.keyboard.down("Shift")
    try:
        page.reload(wait_until="networkidle", timeout=config["reload_timeout"])
    finally:
        try:
            page.keyboard.up("Shift")
        except PlaywrightError:
            pass


def ensure_tab_active(page: Page, config: dict) -> bool:
    """
    Select the Open Pool tab unless it is already the active one.

    Returns False when the tab is not on the page at all.
    """
    tab = find_first(page, config["selectors"]["dashboard_tab"])
    if tab is None:
        logger.debug("[poll] Open Pool tab not found")
        return False
    tab = tab.first
    if not tab.is_visible():
        logger.debug("[poll] Open Pool tab not visible")
        return False

    classes = (tab.get_attribute("class") or "").split()
    if config["tab_active_class"] in classes:
        logger.debug("[poll] Open Pool tab already active")
        return True

    click_with_retry(
        tab,
        attempts=config["click_attempts"],
        base_delay=config["click_base_delay"],
        timeout=config["click_timeout"],
    )
    logger.debug("[poll] Clicked Open Pool tab")
    page.wait_for_timeout(config["tab_settle_ms"])  # let tab content load
    return True
