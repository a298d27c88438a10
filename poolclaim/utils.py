"""
Utility functions: config loading, logging setup, and diagnostics.
"""

import os
import re
import sys
import logging
import yaml
from datetime import datetime

from poolclaim.actions import DEFAULT_SELECTORS, parse_strategies


ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOG_DIR = os.path.join(ROOT_DIR, "logs")
SCREENSHOT_DIR = os.path.join(LOG_DIR, "screenshots")
HTMLDUMP_DIR   = os.path.join(LOG_DIR, "htmldumps")

DEFAULT_TARGET_URL = "https://www.scaler.com/academy/ta-dashboard/teaching_assistant_help_requests/"


def setup_logging() -> logging.Logger:
    """Attach console (INFO) and per-run file (DEBUG) handlers to the "poolclaim" logger."""
    logger = logging.getLogger("poolclaim")
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    os.makedirs(LOG_DIR, exist_ok=True)
    log_file = os.path.join(LOG_DIR, f"run_{datetime.now():%Y%m%d_%H%M%S}.log")

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(
        logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", datefmt="%H:%M:%S")
    )

    # Scheduler ticks run on their own threads; the file log names them
    run_file = logging.FileHandler(log_file, encoding="utf-8")
    run_file.setLevel(logging.DEBUG)
    run_file.setFormatter(
        logging.Formatter("[%(asctime)s] %(levelname)-8s [%(threadName)s] %(message)s")
    )

    logger.addHandler(console)
    logger.addHandler(run_file)
    logger.info(f"Log file: {log_file}")
    return logger


def _default_chrome_executable() -> str:
    if sys.platform == "darwin":
        return "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    if sys.platform.startswith("win"):
        return r"C:\Program Files\Google\Chrome\Application\chrome.exe"
    return "google-chrome"


def _default_quit_command():
    if sys.platform == "darwin":
        return ["osascript", "-e", 'quit app "Google Chrome"']
    return None


def _require_int(config: dict, key: str, minimum: int) -> None:
    value = config[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValueError(f"{key} must be int >= {minimum}, got: {value!r}")


def _require_number(config: dict, key: str, minimum: float) -> None:
    value = config[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        raise ValueError(f"{key} must be a number >= {minimum}, got: {value!r}")


def load_config(config_path: str = None) -> dict:
    """Load and validate config.yaml, applying safe defaults for all keys."""
    if config_path is None:
        config_path = os.path.join(ROOT_DIR, "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    # Target view
    config.setdefault("target_url", DEFAULT_TARGET_URL)
    if not config["target_url"] or not isinstance(config["target_url"], str):
        raise ValueError("Missing required config key: 'target_url'")

    # Scheduling
    config.setdefault("schedule_interval", 60)
    _require_int(config, "schedule_interval", 1)

    # Poll loop
    mode = config.setdefault("poll_mode", "forever")
    if mode not in ("forever", "bounded"):
        raise ValueError(f"Invalid poll_mode '{mode}'. Must be 'forever' or 'bounded'.")
    config.setdefault("max_attempts", 60)
    _require_int(config, "max_attempts", 1)
    for key, default in (("poll_interval", 60), ("claim_cooldown", 5)):
        config.setdefault(key, default)
        _require_number(config, key, 0)
    config.setdefault("hard_reload", True)

    # Timeouts (ms)
    for key, default in (
        ("tab_settle_ms", 2_000),
        ("modal_settle_ms", 1_000),
        ("reload_timeout", 30_000),
        ("nav_timeout", 60_000),
        ("default_timeout", 30_000),
        ("click_timeout", 5_000),
    ):
        config.setdefault(key, default)
        _require_int(config, key, 0)

    # Login gate (seconds)
    config.setdefault("oauth_login_timeout", 120)
    config.setdefault("manual_login_timeout", 300)
    _require_number(config, "oauth_login_timeout", 1)
    _require_number(config, "manual_login_timeout", 1)

    # Action primitive
    config.setdefault("click_attempts", 3)
    _require_int(config, "click_attempts", 1)
    config.setdefault("click_base_delay", 0.5)
    _require_number(config, "click_base_delay", 0)

    # Browser / connection
    config.setdefault("headless", True)
    if os.environ.get("HEADFUL") == "1":
        config["headless"] = False
    config.setdefault("browser_channel", "chrome")
    config.setdefault("cdp_port", 9222)
    _require_int(config, "cdp_port", 1)
    config.setdefault("launch_chrome", True)
    if not config.get("chrome_executable"):
        config["chrome_executable"] = _default_chrome_executable()
    if "chrome_quit_command" not in config:
        config["chrome_quit_command"] = _default_quit_command()
    config.setdefault("chrome_ready_probes", 30)
    _require_int(config, "chrome_ready_probes", 1)
    config.setdefault("session_file", "storageState.json")
    config.setdefault("tab_active_class", "active")

    # Selectors: user lists replace the built-in list for the same key
    raw_selectors = config.get("selectors") or {}
    if not isinstance(raw_selectors, dict):
        raise ValueError("selectors must be a mapping of name -> list of lookups")
    unknown = set(raw_selectors) - set(DEFAULT_SELECTORS)
    if unknown:
        raise ValueError(f"Unknown selector names: {', '.join(sorted(unknown))}")
    config["selectors"] = {
        name: parse_strategies(raw_selectors.get(name, default))
        for name, default in DEFAULT_SELECTORS.items()
    }

    return config


def get_session_path(config: dict) -> str:
    """Return the path to the session storage file."""
    path = config.get("session_file", "storageState.json")
    if os.path.isabs(path):
        return path
    return os.path.join(ROOT_DIR, path)


def _diag_file(directory: str, label: str, ext: str) -> str:
    os.makedirs(directory, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    safe_label = re.sub(r"[^\w\-]", "_", label)[:80]
    return os.path.join(directory, f"{stamp}_{safe_label}.{ext}")


def capture_diagnostics(page, label: str = "error") -> str | None:
    """
    Save evidence of a failed run: a full-page screenshot, or the page HTML
    if the renderer cannot take one. Returns the saved path, or None when
    the page is already gone. Never raises.
    """
    logger = logging.getLogger("poolclaim")
    logger.debug(f"[diag] Failure on {page.url}")

    try:
        shot = _diag_file(SCREENSHOT_DIR, label, "png")
        page.screenshot(path=shot, full_page=True, timeout=5_000)
        logger.info(f"[diag] Screenshot saved: {shot}")
        return shot
    except Exception as e:
        logger.debug(f"[diag] No screenshot ({e}), dumping HTML instead")

    try:
        html = page.content()
        dump = _diag_file(HTMLDUMP_DIR, label, "html")
        with open(dump, "w", encoding="utf-8") as f:
            f.write(html)
        logger.info(f"[diag] HTML dump saved: {dump}")
        return dump
    except Exception as e:
        logger.warning(f"[diag] Could not save page diagnostics: {e}")
        return None
