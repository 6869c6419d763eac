"""
ICCID Activation Automation: Entry Point

Usage:
    python main.py
    python main.py --config path/to/config.yaml
    python main.py --workers 2 --retries 3 --headed
    python main.py --trigger http://host:8099     # run on a control server instead
"""

import argparse
import os
import signal
import sys

from iccid_activator.control_client import ControlClient
from iccid_activator.errors import ActivatorError, ConfigError, InputLoadError, RunInProgressError
from iccid_activator.run_lock import RunLock
from iccid_activator.runner import log_config, run_batch
from iccid_activator.utils import load_config, setup_logging


def _apply_overrides(config: dict, args) -> None:
    """CLI flags win over config.yaml."""
    if args.input:
        config["input_file"] = os.path.abspath(args.input)
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigError(f"--workers must be >= 1, got: {args.workers}")
        config["max_workers"] = args.workers
    if args.retries is not None:
        if args.retries < 1:
            raise ConfigError(f"--retries must be >= 1, got: {args.retries}")
        config["max_retries"] = args.retries
    if args.headed:
        config["headless"] = False


def _trigger_remote(server_url: str, logger) -> int:
    client = ControlClient(server_url, logger=logger)
    try:
        client.start()
        status = client.wait_for_completion()
    except RunInProgressError as e:
        logger.error(f"Remote run rejected: {e}")
        return 2
    except ActivatorError as e:
        logger.error(f"Remote run failed: {e}")
        return 1

    if status.get("state") != "finished":
        logger.error(f"Remote run ended in state '{status.get('state')}': {status.get('error')}")
        return 1
    logger.info(f"Remote run complete: {status.get('summary')}")
    return 0


def main() -> int:
    # ── Parse arguments ──────────────────────────────────────────────
    parser = argparse.ArgumentParser(description="Activate prepaid SIM cards by ICCID")
    parser.add_argument("--config", "-c", default=None, help="Path to config.yaml (default: ./config.yaml)")
    parser.add_argument("--input", "-i", default=None, help="ICCID CSV file (overrides input_file)")
    parser.add_argument("--workers", "-w", type=int, default=None, help="Concurrent activations (overrides max_workers)")
    parser.add_argument("--retries", "-r", type=int, default=None, help="Attempts per ICCID (overrides max_retries)")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--trigger", metavar="SERVER_URL", default=None,
                        help="Start the run on a control server and wait for it")
    args = parser.parse_args()

    # ── Setup ────────────────────────────────────────────────────────
    logger = setup_logging()

    if args.trigger:
        return _trigger_remote(args.trigger, logger)

    try:
        config = load_config(args.config)
        _apply_overrides(config, args)
    except (FileNotFoundError, ConfigError) as e:
        logger.error(f"Configuration error: {e}")
        return 1

    log_config(config, logger)

    # ── Run ──────────────────────────────────────────────────────────
    try:
        with RunLock(config["lock_file"], logger=logger):
            report = run_batch(config, logger=logger)
    except RunInProgressError as e:
        logger.error(f"{e}")
        return 2
    except InputLoadError as e:
        logger.error(f"Input error: {e}")
        return 1

    logger.info(f"All done - {report.summary.total} ICCID(s) processed")
    return 0


# Handle Ctrl+C at the top level too
signal.signal(signal.SIGINT, lambda *_: (print("\nCtrl+C pressed. Exiting..."), os._exit(1)))

if __name__ == "__main__":
    sys.exit(main())
