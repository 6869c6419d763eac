"""
Utility functions: config loading, logging setup, and helpers.
"""

import os
import re
import random
import logging
import socket
import yaml
from datetime import datetime

from iccid_activator.errors import ConfigError
from iccid_activator.models import DEFAULT_MARKER_TEXTS


# Resolved against the working directory
LOG_DIR = "logs"

LOGGER_NAME = "iccid_activator"

_REQUIRED_SELECTORS = ("iccid_input", "next_button", "activate_button")
_PATH_KEYS = ("input_file", "results_file", "invalid_file", "lock_file")


def get_worker_id() -> str:
    """Return a stable machine identifier (hostname) for log and status output."""
    return socket.gethostname()


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def setup_logging(log_dir: str = None) -> logging.Logger:
    """Configure and return the project logger."""
    log_dir = os.path.abspath(log_dir or LOG_DIR)
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"run_{timestamp}.log")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers on repeated calls
    if logger.handlers:
        return logger

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch_fmt = logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", datefmt="%H:%M:%S")
    ch.setFormatter(ch_fmt)

    # File handler
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh_fmt = logging.Formatter("[%(asctime)s] %(levelname)-8s %(name)s - %(message)s")
    fh.setFormatter(fh_fmt)

    logger.addHandler(ch)
    logger.addHandler(fh)

    logger.info(f"Log file: {log_file}")
    return logger


def _require_int(config: dict, key: str, minimum: int) -> None:
    value = config[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"{key} must be int >= {minimum}, got: {value!r}")


def load_config(config_path: str = None) -> dict:
    """Load and validate config.yaml, applying safe defaults for optional keys."""
    if config_path is None:
        config_path = os.path.join(os.getcwd(), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    # Required: the activation page and its three controls
    if not config.get("url"):
        raise ConfigError("Missing required config key: 'url'")

    selectors = config.get("selectors")
    if not isinstance(selectors, dict):
        raise ConfigError("Missing required config key: 'selectors'")
    missing = [k for k in _REQUIRED_SELECTORS if not selectors.get(k)]
    if missing:
        raise ConfigError(f"Missing required selectors: {', '.join(missing)}")

    # Files
    config.setdefault("input_file", "iccids.csv")
    config.setdefault("results_file", "activation_results.csv")
    config.setdefault("invalid_file", "invalid_iccids.csv")
    config.setdefault("lock_file", "activation.lock")

    # Scheduling
    config.setdefault("max_workers", 3)
    _require_int(config, "max_workers", 1)
    config.setdefault("max_retries", 2)
    _require_int(config, "max_retries", 1)

    # Timeouts (milliseconds, same unit Playwright takes)
    config.setdefault("nav_timeout_ms", 30_000)
    _require_int(config, "nav_timeout_ms", 1_000)
    config.setdefault("marker_timeout_ms", 5_000)
    _require_int(config, "marker_timeout_ms", 100)

    # Browser
    config.setdefault("headless", True)
    config.setdefault("humanize", True)
    config.setdefault("capture_diagnostics", False)

    delay = config.setdefault("delay_range_ms", [200, 500])
    if (
        not isinstance(delay, (list, tuple)) or len(delay) != 2
        or not all(isinstance(v, int) and not isinstance(v, bool) for v in delay)
        or delay[0] < 0 or delay[0] > delay[1]
    ):
        raise ConfigError(f"delay_range_ms must be [low, high] with 0 <= low <= high, got: {delay!r}")
    config["delay_range_ms"] = list(delay)

    # Marker texts
    markers = config.get("markers") or {}
    if not isinstance(markers, dict):
        raise ConfigError("markers must be a mapping of marker name to text")
    unknown = sorted(set(markers) - set(DEFAULT_MARKER_TEXTS))
    if unknown:
        raise ConfigError(f"Unknown marker name(s): {', '.join(unknown)}")
    config["markers"] = {**DEFAULT_MARKER_TEXTS, **markers}

    # Control server
    config.setdefault("control_host", "0.0.0.0")
    config.setdefault("control_port", 8099)
    _require_int(config, "control_port", 1)
    config.setdefault("auto_start", False)

    # Relative paths follow the config file, not the working directory
    base_dir = os.path.dirname(os.path.abspath(config_path))
    for key in _PATH_KEYS:
        if not os.path.isabs(config[key]):
            config[key] = os.path.join(base_dir, config[key])

    return config


def random_delay_ms(delay_range_ms) -> int:
    """Pick a humanizing delay inside [low, high] milliseconds."""
    low, high = delay_range_ms
    return random.randint(low, high)


# ── Diagnostics ──────────────────────────────────────────────────────────

SCREENSHOT_DIR = os.path.join(LOG_DIR, "screenshots")
HTMLDUMP_DIR   = os.path.join(LOG_DIR, "htmldumps")


async def capture_diagnostics(page, label: str = "error", logger: logging.Logger = None) -> str | None:
    """
    Capture what we can from a page that just failed.

    Chain:
      1. log page.url and page.title()
      2. page.screenshot() with a hard 5s timeout
      3. on failure, page.content() saved as an .html dump

    Returns the saved file path, or None.  Never raises.
    """
    logger = logger or get_logger()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_label = re.sub(r"[^\w\-]", "_", label)[:80]

    try:
        current_url = page.url
    except Exception:
        current_url = "<unavailable>"
    try:
        current_title = await page.title()
    except Exception:
        current_title = "<unavailable>"
    logger.debug(f"[diag] url={current_url}  title={current_title}")

    try:
        os.makedirs(SCREENSHOT_DIR, exist_ok=True)
        filepath = os.path.join(SCREENSHOT_DIR, f"{timestamp}_{safe_label}.png")
        await page.screenshot(path=filepath, full_page=False, timeout=5_000)
        logger.info(f"Screenshot saved: {filepath}")
        return filepath
    except Exception as ss_err:
        logger.debug(f"Screenshot failed ({ss_err}), falling back to HTML dump")

    try:
        os.makedirs(HTMLDUMP_DIR, exist_ok=True)
        html_filepath = os.path.join(HTMLDUMP_DIR, f"{timestamp}_{safe_label}.html")
        html_content = await page.content()
        with open(html_filepath, "w", encoding="utf-8") as f:
            f.write(html_content)
        logger.info(f"HTML dump saved: {html_filepath}")
        return html_filepath
    except Exception as html_err:
        logger.warning(f"HTML dump also failed: {html_err}")
        return None
