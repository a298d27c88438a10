"""
Actions module: the retrying click primitive and ordered element lookups.

Every element the dashboard flow touches is described by an ordered list of
LocatorStrategy entries (specific selector first, generic fallback after).
The lists live in config.yaml so a changed page only needs a config edit.
"""

import re
import logging
import time
from dataclasses import dataclass
from typing import Optional

from playwright.sync_api import Error as PlaywrightError, Locator, Page

logger = logging.getLogger("poolclaim")

# Generic modal containers used by the slot / confirm fallbacks
_DIALOG = '[role="dialog"], .modal, .md-dialog'

DEFAULT_SELECTORS = {
    # Only rendered on the authenticated dashboard
    "dashboard_tab": [
        'li[data-ga-label="open_pool_hr"]',
    ],
    "oauth_link": [
        'a[href="/users/auth/google_oauth2/"]',
    ],
    "claim_button": [
        'button[data-ga-label="accept-request-open-pool"]',
        {"role": "button", "name": r"view\s*&\s*accept\s*request"},
    ],
    "join_resolve": [
        "a.chr-open-request-accept-modal__join-resolve-btn",
    ],
    "slot": [
        'input[ng-model="chrAcceptOpenPoolModal.selectedSlot"]',
        {"within": _DIALOG, "css": 'input[type="radio"]'},
    ],
    "confirm": [
        'div.chr-open-request-accept-modal__book-slot-btn[ng-click="submitChrAcceptOpenPoolModal()"]',
        {"within": _DIALOG, "role": "button", "name": "accept|submit|confirm"},
    ],
}


@dataclass(frozen=True)
class LocatorStrategy:
    """One way of finding an element: a CSS selector or an ARIA role + name,
    optionally scoped to the elements matched by ``within``."""

    css: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    within: Optional[str] = None

    @classmethod
    def from_config(cls, raw) -> "LocatorStrategy":
        if isinstance(raw, str):
            return cls(css=raw)
        if not isinstance(raw, dict):
            raise ValueError(f"Selector entry must be a string or mapping, got: {raw!r}")
        unknown = set(raw) - {"css", "role", "name", "within"}
        if unknown:
            raise ValueError(f"Unknown selector keys {sorted(unknown)} in {raw!r}")
        strategy = cls(**raw)
        if bool(strategy.css) == bool(strategy.role):
            raise ValueError(f"Selector entry needs exactly one of 'css' or 'role': {raw!r}")
        if strategy.name:
            re.compile(strategy.name)
        return strategy

    def locate(self, page: Page) -> Locator:
        """Build the locator without checking that anything matches yet."""
        scope = page.locator(self.within) if self.within else page
        if self.role:
            if self.name:
                return scope.get_by_role(self.role, name=re.compile(self.name, re.IGNORECASE))
            return scope.get_by_role(self.role)
        return scope.locator(self.css)

    def resolve(self, page: Page) -> Optional[Locator]:
        """Return a locator with at least one match, or None."""
        if self.within and page.locator(self.within).count() == 0:
            return None
        locator = self.locate(page)
        return locator if locator.count() > 0 else None

    def describe(self) -> str:
        target = f"role={self.role}[name~/{self.name}/]" if self.role else self.css
        return f"{self.within} >> {target}" if self.within else target


def parse_strategies(raw_list) -> list[LocatorStrategy]:
    if isinstance(raw_list, (str, dict)):
        raw_list = [raw_list]
    if not raw_list:
        raise ValueError("Selector list must not be empty")
    return [LocatorStrategy.from_config(raw) for raw in raw_list]


def find_first(page: Page, strategies: list[LocatorStrategy]) -> Optional[Locator]:
    """Evaluate strategies in order; the first one that matches wins."""
    for strategy in strategies:
        locator = strategy.resolve(page)
        if locator is not None:
            logger.debug(f"  matched: {strategy.describe()}")
            return locator
    return None


def click_with_retry(
    locator: Locator,
    attempts: int = 3,
    base_delay: float = 0.5,
    timeout: int = 5_000,
    action: str = "click",
) -> None:
    """Wait for *locator* to be visible and click it (or ``check`` it for radios).

    Retries with a linear backoff (``base_delay * attempt`` seconds) and
    re-raises the last Playwright error once all attempts are used.
    """
    for attempt in range(1, attempts + 1):
        try:
            locator.wait_for(state="visible", timeout=timeout)
            getattr(locator, action)(timeout=timeout)
            return
        except PlaywrightError as e:
            if attempt == attempts:
                raise
            delay = base_delay * attempt
            logger.warning(
                f"  Click failed (attempt {attempt}/{attempts}): "
                f"{str(e).splitlines()[0] if str(e) else e.__class__.__name__}. "
                f"Retrying in {delay:.1f}s..."
            )
            time.sleep(delay)
