"""
Poller module: reload the dashboard until an Open Pool request shows up.

State machine:  IDLE → POLLING → FOUND | EXHAUSTED | ABORTED

  bounded: up to max_attempts reloads; first request found is claimed and
           the loop ends FOUND, otherwise EXHAUSTED (nothing to claim).
  forever: claims every request it sees and keeps polling; only ends
           ABORTED (page/context closed, or stop requested).

Reload failures are transient (server down, timeout): log, wait, poll again.
A closed page or context is terminal.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from playwright.sync_api import Error as PlaywrightError, Page

from poolclaim.claimer import ClaimOutcome, claim_request, has_claimable_request
from poolclaim.navigator import ensure_tab_active, reload_dashboard

logger = logging.getLogger("poolclaim")

PAUSE_SLICE_MS = 1_000


class PollState(Enum):
    IDLE      = "idle"
    POLLING   = "polling"
    FOUND     = "found"
    EXHAUSTED = "exhausted"
    ABORTED   = "aborted"


@dataclass
class PollResult:
    state: PollState = PollState.IDLE
    attempts: int = 0
    claims: list = field(default_factory=list)
    reason: str = ""

    @property
    def claimed(self) -> int:
        return sum(1 for outcome in self.claims if outcome.claimed)


CLOSED_TARGET_MESSAGES = (
    "Target page, context or browser has been closed",
    "Target closed",
    "Browser has been closed",
)


def _is_closed_error(page: Page, error: Exception) -> bool:
    if page.is_closed():
        return True
    text = str(error)
    return any(message in text for message in CLOSED_TARGET_MESSAGES)


def _pause(page: Page, seconds: float, stop_event: Optional[threading.Event]) -> bool:
    """Wait between polls. Returns False if the page can no longer be used."""
    remaining_ms = seconds * 1000
    try:
        # Sliced so a stop request is noticed within a second
        while remaining_ms > 0:
            if stop_event is not None and stop_event.is_set():
                return True
            step = min(PAUSE_SLICE_MS, remaining_ms)
            page.wait_for_timeout(step)
            remaining_ms -= step
        return True
    except PlaywrightError:
        return False


def poll_for_requests(
    page: Page,
    config: dict,
    stop_event: Optional[threading.Event] = None,
    claim: Callable[[Page, dict], ClaimOutcome] = claim_request,
) -> PollResult:
    """Drive the poll loop to a terminal state and return the result."""
    bounded = config["poll_mode"] == "bounded"
    max_attempts = config["max_attempts"] if bounded else None
    interval = config["poll_interval"]
    result = PollResult(state=PollState.POLLING)

    def abort(reason: str) -> PollResult:
        logger.info(f"[poll] ❌ {reason}. Stopping poll loop.")
        result.state = PollState.ABORTED
        result.reason = reason
        return result

    while max_attempts is None or result.attempts < max_attempts:
        if stop_event is not None and stop_event.is_set():
            return abort("Stop requested")
        if page.is_closed():
            return abort("Page was closed")

        result.attempts += 1
        attempt = result.attempts
        last_attempt = max_attempts is not None and attempt >= max_attempts
        label = f"{attempt}/{max_attempts}" if bounded else f"{attempt}"
        logger.info(f"[poll] Attempt {label}: checking for open requests...")

        try:
            reload_dashboard(page, config)
            ensure_tab_active(page, config)
            found = has_claimable_request(page, config)
        except PlaywrightError as e:
            if _is_closed_error(page, e):
                return abort("Browser/page was closed")
            logger.warning(f"[poll] ⚠️  Page reload failed (server may be down): {e}")
            if last_attempt:
                break
            if not _pause(page, interval, stop_event):
                return abort("Cannot wait, page closed")
            continue

        if found:
            logger.info('[poll] ✅ "View & Accept Request" button found!')
            outcome = claim(page, config)
            result.claims.append(outcome)
            if outcome.claimed:
                logger.info(f"[poll] ✅ Request claimed ({outcome.value})")
            else:
                logger.warning(f"[poll] Claim attempt ended without a claim ({outcome.value})")
            if bounded:
                result.state = PollState.FOUND
                return result
            logger.info("[poll] Continuing to monitor...")
            if not _pause(page, config["claim_cooldown"], stop_event):
                return abort("Cannot wait, page closed")
            continue

        if last_attempt:
            break
        logger.info(f"[poll] No open requests. Waiting {interval}s before next check...")
        if not _pause(page, interval, stop_event):
            return abort("Cannot wait, page closed")

    logger.info(f"[poll] No open request found after {result.attempts} attempts.")
    result.state = PollState.EXHAUSTED
    return result
