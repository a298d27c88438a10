"""
Open Pool Claimer — Entry Point

Usage:
    python main.py                  # claim on a schedule until Ctrl+C
    python main.py --once           # a single run
    python main.py --login          # log in once and save the session file
    python main.py --config path/to/config.yaml
"""

import argparse
import sys
import threading

from playwright.sync_api import sync_playwright

from poolclaim.utils import setup_logging, load_config
from poolclaim.auth import bootstrap_session
from poolclaim.guard import RunGuard
from poolclaim.scheduler import Scheduler
from poolclaim.worker import ClaimWorker


def main():
    # ── Parse arguments ──────────────────────────────────────────────
    parser = argparse.ArgumentParser(
        description="Claim the first available Open Pool help request"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.yaml (default: ./config.yaml)"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single claim run and exit")
    mode.add_argument("--login", action="store_true", help="Log in manually and save the session")
    args = parser.parse_args()

    # ── Setup ────────────────────────────────────────────────────────
    logger = setup_logging()
    config = load_config(args.config)

    logger.info("Configuration loaded:")
    logger.info(f"  Dashboard:        {config['target_url']}")
    logger.info(f"  Poll mode:        {config['poll_mode']}")
    if config["poll_mode"] == "bounded":
        logger.info(f"  Max attempts:     {config['max_attempts']}")
    logger.info(f"  Poll interval:    {config['poll_interval']}s")
    logger.info(f"  Schedule:         every {config['schedule_interval']}s")
    logger.info(f"  Debug port:       {config['cdp_port']}")
    logger.info(f"  Headless:         {config['headless']}")

    # ── First-time login ─────────────────────────────────────────────
    if args.login:
        with sync_playwright() as p:
            path = bootstrap_session(p, config)
        logger.info(f"✅ Session saved to {path}. Scheduled runs will reuse it.")
        return 0

    guard = RunGuard()
    stop_event = threading.Event()
    worker = ClaimWorker(config, stop_event=stop_event)
    scheduler = Scheduler(
        job=worker.run_once,
        interval=config["schedule_interval"],
        guard=guard,
        stop_event=stop_event,
    )

    # ── Single run ───────────────────────────────────────────────────
    if args.once:
        try:
            guard.run(worker.run_once)
        except KeyboardInterrupt:
            logger.info("\nCtrl+C detected. Shutting down...")
            return 1
        except Exception:
            return 1
        return 0

    # ── Scheduled runs ───────────────────────────────────────────────
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("\nCtrl+C detected. Shutting down...")
        scheduler.stop(timeout=10)
    return 0


if __name__ == "__main__":
    sys.exit(main())
