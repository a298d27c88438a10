"""
Authentication module: login detection and session bootstrap.

The dashboard is behind a Google OAuth login. A run either finds the
dashboard straight away, follows the OAuth link and waits for the redirect
back, or waits for the user to finish logging in inside the visible browser.
"""

import logging
from playwright.sync_api import Page, Playwright, TimeoutError as PlaywrightTimeout

from poolclaim.actions import find_first
from poolclaim.connection import launch
from poolclaim.navigator import open_dashboard
from poolclaim.utils import get_session_path

logger = logging.getLogger("poolclaim")


class LoginTimeoutError(RuntimeError):
    """Login was not completed within the allowed time."""


def _visible(locator) -> bool:
    if locator is None:
        return False
    try:
        return locator.first.is_visible()
    except Exception:
        return False


def is_authenticated(page: Page, config: dict) -> bool:
    return _visible(find_first(page, config["selectors"]["dashboard_tab"]))


def ensure_logged_in(page: Page, config: dict) -> str:
    """
    Make sure *page* shows the authenticated dashboard.

    Returns how the gate resolved: "authenticated", "oauth" or "manual".
    Raises LoginTimeoutError if login does not complete in time.
    """
    if is_authenticated(page, config):
        logger.debug("[auth] Already logged in")
        return "authenticated"

    target_url = config["target_url"]
    oauth_link = find_first(page, config["selectors"]["oauth_link"])
    if _visible(oauth_link):
        timeout_s = config["oauth_login_timeout"]
        logger.info("[auth] Not logged in, clicking Google login...")
        oauth_link.first.click()
        logger.info("[auth] Please complete Google authentication in the browser...")
        try:
            page.wait_for_url(lambda url: url.startswith(target_url), timeout=timeout_s * 1000)
            page.wait_for_load_state("networkidle")
        except PlaywrightTimeout as e:
            raise LoginTimeoutError(
                f"OAuth login did not return to the dashboard within {timeout_s}s"
            ) from e
        logger.info("[auth] Login completed, continuing...")
        return "oauth"

    timeout_s = config["manual_login_timeout"]
    logger.info(
        f"[auth] Dashboard not visible — complete the login in the browser "
        f"(waiting up to {timeout_s}s)..."
    )
    marker = config["selectors"]["dashboard_tab"][0].locate(page)
    try:
        marker.first.wait_for(state="visible", timeout=timeout_s * 1000)
    except PlaywrightTimeout as e:
        raise LoginTimeoutError(f"Dashboard did not appear within {timeout_s}s") from e
    logger.info("[auth] Login detected, continuing...")
    return "manual"


def bootstrap_session(playwright: Playwright, config: dict) -> str:
    """
    First-time setup: open a visible browser, let the user log in,
    and save the session file for later headless runs.
    """
    session = launch(playwright, config, headless=False)
    try:
        page = session.acquire_page(config["target_url"])
        open_dashboard(page, config["target_url"], timeout=config["nav_timeout"])
        ensure_logged_in(page, {**config, "oauth_login_timeout": config["manual_login_timeout"]})
        session_path = get_session_path(config)
        session.persist(session_path)
        return session_path
    finally:
        session.close()
