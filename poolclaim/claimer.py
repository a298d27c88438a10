"""
Claimer module: turn a visible Open Pool request into a claimed one.

Flow:
  1. Click "View & Accept Request" on the first request in the list
  2. If the modal offers "Join now & Resolve" → click it, done
  3. Otherwise select the first available time slot
  4. Click the modal's confirm button (some flows confirm on slot selection)

Claiming changes remote state, so nothing here is retried as a whole: a
failed step is reported and the next poll cycle looks at the queue again.
"""

import logging
from enum import Enum

from playwright.sync_api import Error as PlaywrightError, Page

from poolclaim.actions import click_with_retry, find_first

logger = logging.getLogger("poolclaim")


class ClaimOutcome(Enum):
    JOINED      = "joined"         # direct "Join now & Resolve"
    CONFIRMED   = "confirmed"      # slot selected + confirm clicked
    UNCONFIRMED = "unconfirmed"    # slot selected, no confirm button present
    JOIN_FAILED = "join_failed"
    NO_SLOT     = "no_slot"
    GONE        = "gone"           # request vanished before it could be opened

    @property
    def claimed(self) -> bool:
        return self in (ClaimOutcome.JOINED, ClaimOutcome.CONFIRMED, ClaimOutcome.UNCONFIRMED)


def has_claimable_request(page: Page, config: dict) -> bool:
    return find_first(page, config["selectors"]["claim_button"]) is not None


def claim_request(page: Page, config: dict) -> ClaimOutcome:
    """Run the acceptance flow against the first claimable request."""
    selectors = config["selectors"]
    click_opts = {
        "attempts": config["click_attempts"],
        "base_delay": config["click_base_delay"],
        "timeout": config["click_timeout"],
    }

    # ── 1. Open the request ──────────────────────────────────────────
    entry = find_first(page, selectors["claim_button"])
    if entry is None:
        logger.warning("[claim] Request disappeared before it could be opened")
        return ClaimOutcome.GONE
    click_with_retry(entry.first, **click_opts)
    logger.info("[claim] Clicked View & Accept Request")
    page.wait_for_timeout(config["modal_settle_ms"])  # let the modal render

    # ── 2a. Direct join ──────────────────────────────────────────────
    join_btn = find_first(page, selectors["join_resolve"])
    if join_btn is not None:
        logger.info('[claim] "Join now & Resolve" button found, clicking it...')
        try:
            join_btn.first.wait_for(state="visible", timeout=config["click_timeout"])
            join_btn.first.click()
        except PlaywrightError as e:
            logger.warning(f'[claim] Failed to click "Join now & Resolve": {e}')
            return ClaimOutcome.JOIN_FAILED
        logger.info('[claim] Clicked "Join now & Resolve"')
        return ClaimOutcome.JOINED

    # ── 2b. Slot selection ───────────────────────────────────────────
    logger.debug("[claim] No direct join offered, selecting a slot...")
    slot = find_first(page, selectors["slot"])
    if slot is None:
        logger.warning("[claim] No slot radio button found — leaving request for a later cycle")
        return ClaimOutcome.NO_SLOT
    click_with_retry(slot.first, action="check", **click_opts)
    logger.info("[claim] Selected first available slot")

    # ── 3. Confirm ───────────────────────────────────────────────────
    confirm_btn = find_first(page, selectors["confirm"])
    if confirm_btn is None:
        logger.info("[claim] No explicit Accept/Submit/Confirm button found (skipped)")
        return ClaimOutcome.UNCONFIRMED
    click_with_retry(confirm_btn.first, **click_opts)
    logger.info("[claim] Clicked final Accept/Submit/Confirm")
    return ClaimOutcome.CONFIRMED
