"""End-to-end runs of ClaimWorker.run_once against fake browser sessions."""

from __future__ import annotations

import time
from contextlib import nullcontext

import pytest
from playwright.sync_api import Error as PlaywrightError

from fakes import (
    CLAIM,
    CLOSED_MESSAGE,
    CONFIRM,
    DASH,
    LOGIN_URL,
    OAUTH,
    SLOT,
    TARGET_URL,
    FakeBrowser,
    FakeContext,
    FakeElement,
    FakePage,
    dashboard_dom,
    make_config,
)


@pytest.fixture(autouse=True)
def _no_real_diagnostics(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    from poolclaim import utils

    monkeypatch.setattr(utils, "SCREENSHOT_DIR", str(tmp_path / "screenshots"))
    monkeypatch.setattr(utils, "HTMLDUMP_DIR", str(tmp_path / "htmldumps"))
    monkeypatch.setattr(time, "sleep", lambda s: None)


def _worker(config: dict, session):  # noqa: ANN001
    from poolclaim.worker import ClaimWorker

    return ClaimWorker(
        config,
        playwright_factory=lambda: nullcontext(None),
        session_factory=lambda p, cfg: session,
    )


def _owned(page: FakePage):
    from poolclaim.connection import OwnedSession

    context = FakeContext([page])
    browser = FakeBrowser([context])
    return OwnedSession(browser, context), context, browser


def test_scenario_a_login_then_claim_via_slot(tmp_path) -> None:
    from poolclaim.claimer import ClaimOutcome
    from poolclaim.poller import PollState

    config = make_config(tmp_path, poll_mode="bounded", max_attempts=3)
    slots = [FakeElement("10:00"), FakeElement("10:30")]
    confirm = FakeElement("Book slot")

    def open_modal(page: FakePage) -> None:
        page.dom[SLOT] = slots
        page.dom[CONFIRM] = [confirm]

    def google_redirect(page: FakePage) -> None:
        page.url = TARGET_URL
        page.dom.pop(OAUTH)
        page.dom[DASH] = [FakeElement("Open Pool")]

    def redirect_to_login(page: FakePage) -> None:
        page.url = LOGIN_URL

    def request_on_first_reload(page: FakePage, n: int) -> None:
        if n == 1:
            page.dom[CLAIM] = [FakeElement("View & Accept Request", on_click=open_modal)]

    page = FakePage(
        dom={OAUTH: [FakeElement("Continue with Google", on_click=google_redirect)]},
        on_goto=redirect_to_login,
        on_reload=request_on_first_reload,
    )
    session, context, browser = _owned(page)
    worker = _worker(config, session)

    worker.run_once()

    assert worker.last_result.state is PollState.FOUND
    assert worker.last_result.attempts == 1
    assert worker.last_result.claims == [ClaimOutcome.CONFIRMED]
    assert slots[0].checked and not slots[1].checked
    assert confirm.clicks == 1
    assert context.saved == [config["session_file"], config["session_file"]]
    assert context.closed and browser.closed


def test_scenario_b_nothing_to_claim_is_normal_completion(tmp_path) -> None:
    from poolclaim.poller import PollState

    config = make_config(tmp_path, poll_mode="bounded", max_attempts=3)
    page = FakePage(dom=dashboard_dom())
    session, context, _browser = _owned(page)
    worker = _worker(config, session)

    worker.run_once()

    assert worker.last_result.state is PollState.EXHAUSTED
    assert worker.last_result.claimed == 0
    assert page.reloads == 3
    assert page.screenshots == []
    assert context.saved == [config["session_file"]]


def test_scenario_c_context_closed_mid_poll_aborts(tmp_path) -> None:
    from poolclaim.poller import PollState

    config = make_config(tmp_path, poll_mode="forever")
    waits_at_close = []

    def closed_on_second_reload(page: FakePage, n: int) -> None:
        if n == 2:
            waits_at_close.append(len(page.waits))
            page.closed = True
            raise PlaywrightError(CLOSED_MESSAGE)

    page = FakePage(dom=dashboard_dom(), on_reload=closed_on_second_reload)
    session, context, _browser = _owned(page)
    worker = _worker(config, session)

    worker.run_once()

    assert worker.last_result.state is PollState.ABORTED
    assert page.reloads == 2
    assert waits_at_close == [len(page.waits)]
    assert context.saved == []
    assert context.closed is True


def test_borrowed_session_is_never_saved_or_closed(tmp_path) -> None:
    from poolclaim.connection import BorrowedSession

    config = make_config(tmp_path, poll_mode="bounded", max_attempts=1)
    page = FakePage(url=TARGET_URL, dom=dashboard_dom())
    context = FakeContext([page])
    browser = FakeBrowser([context])
    worker = _worker(config, BorrowedSession(browser, context))

    worker.run_once()

    assert context.saved == []
    assert context.closed is False
    assert browser.closed is False
    assert page.closed is False


def test_unexpected_failure_takes_screenshot_and_reraises(tmp_path) -> None:
    config = make_config(tmp_path, poll_mode="bounded", max_attempts=3)
    stuck = FakeElement("View & Accept Request", fail_clicks=99)
    page = FakePage(dom=dashboard_dom({CLAIM: [stuck]}))
    session, context, browser = _owned(page)
    worker = _worker(config, session)

    with pytest.raises(PlaywrightError):
        worker.run_once()

    assert len(page.screenshots) == 1
    assert page.screenshots[0].startswith(str(tmp_path / "screenshots"))
    assert context.saved == []
    assert context.closed and browser.closed


def test_login_timeout_aborts_cleanly(tmp_path) -> None:
    from poolclaim.auth import LoginTimeoutError

    config = make_config(tmp_path, manual_login_timeout=1)
    page = FakePage(dom={})
    session, context, browser = _owned(page)
    worker = _worker(config, session)

    with pytest.raises(LoginTimeoutError):
        worker.run_once()

    assert page.reloads == 0
    assert page.screenshots == []
    assert context.saved == []
    assert context.closed and browser.closed


def test_guarded_run_releases_flag_on_every_exit(tmp_path) -> None:
    from poolclaim.auth import LoginTimeoutError
    from poolclaim.guard import RunGuard

    guard = RunGuard()
    ok_config = make_config(tmp_path, poll_mode="bounded", max_attempts=1)
    ok_worker = _worker(ok_config, _owned(FakePage(dom=dashboard_dom()))[0])

    assert guard.active is False
    guard.run(ok_worker.run_once)
    assert guard.active is False

    bad_worker = _worker(make_config(tmp_path, manual_login_timeout=1), _owned(FakePage(dom={}))[0])
    with pytest.raises(LoginTimeoutError):
        guard.run(bad_worker.run_once)
    assert guard.active is False


def test_forever_mode_stopped_cleanly_still_saves_session(tmp_path) -> None:
    import threading

    from poolclaim.poller import PollState
    from poolclaim.worker import ClaimWorker

    config = make_config(tmp_path, poll_mode="forever")
    stop = threading.Event()

    def stop_on_second_reload(page: FakePage, n: int) -> None:
        if n == 2:
            stop.set()

    page = FakePage(dom=dashboard_dom(), on_reload=stop_on_second_reload)
    session, context, browser = _owned(page)
    worker = ClaimWorker(
        config,
        stop_event=stop,
        playwright_factory=lambda: nullcontext(None),
        session_factory=lambda p, cfg: session,
    )

    worker.run_once()

    assert worker.last_result.state is PollState.ABORTED
    assert worker.last_result.reason == "Stop requested"
    assert page.is_closed() is False
    assert context.saved == [config["session_file"]]
    assert context.closed and browser.closed


def test_manual_login_is_saved_before_polling(tmp_path) -> None:
    config = make_config(tmp_path, poll_mode="bounded", max_attempts=1)
    saves_seen_by_reload = []
    tab = FakeElement("Open Pool", visible=False, becomes_visible=True)
    page = FakePage(dom={DASH: [tab]})
    session, context, _browser = _owned(page)
    page.on_reload = lambda p, n: saves_seen_by_reload.append(len(context.saved))
    worker = _worker(config, session)

    worker.run_once()

    assert saves_seen_by_reload == [1]
    assert context.saved == [config["session_file"], config["session_file"]]
