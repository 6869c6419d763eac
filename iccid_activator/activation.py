"""
Activation flow for a single ICCID.

run_attempt() walks one session through the two-step form:

    navigate -> fill ICCID -> Next Step -> step-1 markers
        already activated  -> already_activated
        system issue       -> invalid_iccid
        processing         -> processing
        (none)             -> Activate Now -> step-2 markers
                                  success    -> success
                                  processing -> processing
                                  (none)     -> activation_failed

Markers in a step are checked one after another, each with its own
marker_timeout window.  The first marker in the list that shows up inside
its window wins, even if a later one would have appeared sooner.

activate() wraps run_attempt() with the retry policy: a fresh session per
attempt, raised failures are retried, classified outcomes are final.
"""

import logging

from iccid_activator.errors import SessionOpenError
from iccid_activator.models import (
    DEFAULT_MARKER_TEXTS,
    NO_RESPONSE_DETAIL,
    PROCESSING_DETAIL,
    STATUS_ALREADY_ACTIVATED,
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_INVALID,
    STATUS_PROCESSING,
    STATUS_SUCCESS,
    Marker,
    Outcome,
)
from iccid_activator.utils import get_logger

DEFAULT_MAX_RETRIES = 2
DEFAULT_NAV_TIMEOUT = 30_000
DEFAULT_MARKER_TIMEOUT = 5_000


def build_marker_sets(markers: dict = None) -> tuple[list[Marker], list[Marker]]:
    """Return the (step 1, step 2) marker lists in priority order."""
    texts = {**DEFAULT_MARKER_TEXTS, **(markers or {})}
    processing = Marker(texts["processing"], STATUS_PROCESSING, PROCESSING_DETAIL)
    step1 = [
        Marker(texts["already_activated"], STATUS_ALREADY_ACTIVATED, texts["already_activated"]),
        Marker(texts["system_issue"], STATUS_INVALID, texts["system_issue"]),
        processing,
    ]
    step2 = [
        Marker(texts["success"], STATUS_SUCCESS, texts["success"]),
        processing,
    ]
    return step1, step2


async def first_marker(session, markers: list[Marker], timeout: int) -> Marker | None:
    """Check `markers` in order; return the first one seen inside its own window."""
    for marker in markers:
        if await session.wait_for_text(marker.text, timeout):
            return marker
    return None


async def run_attempt(session, iccid: str, config: dict, *, logger: logging.Logger = None) -> Outcome:
    """
    One pass of the form flow on an already-open session.

    Returns a classified Outcome.  Navigation, element and driver failures
    propagate to the caller untouched.
    """
    logger = logger or get_logger()
    selectors = config["selectors"]
    nav_timeout = config.get("nav_timeout_ms", DEFAULT_NAV_TIMEOUT)
    marker_timeout = config.get("marker_timeout_ms", DEFAULT_MARKER_TIMEOUT)
    step1, step2 = build_marker_sets(config.get("markers"))

    await session.navigate(config["url"], nav_timeout)

    await session.fill(selectors["iccid_input"], iccid, nav_timeout)
    logger.info(f"  Entered ICCID: {iccid}")

    if config.get("humanize", True):
        await session.humanize(config.get("delay_range_ms", [200, 500]))

    await session.click(selectors["next_button"], nav_timeout)
    logger.info("  Clicked Next Step button")

    hit = await first_marker(session, step1, marker_timeout)
    if hit is not None:
        logger.info(f"  ICCID {iccid} -> {hit.status}")
        return Outcome(iccid, hit.status, hit.detail)

    # No step-1 marker: the form is ready to activate
    await session.click(selectors["activate_button"], nav_timeout)
    logger.info("  Clicked Activate Now button")

    hit = await first_marker(session, step2, marker_timeout)
    if hit is not None:
        logger.info(f"  ICCID {iccid} -> {hit.status}")
        return Outcome(iccid, hit.status, hit.detail)

    logger.error(f"  ICCID {iccid} activation failed: no expected response")
    return Outcome(iccid, STATUS_FAILED, NO_RESPONSE_DETAIL)


async def activate(driver, iccid: str, config: dict, *, logger: logging.Logger = None) -> Outcome:
    """
    Run attempts for one ICCID until one yields a classified Outcome.

    Each attempt opens its own session and closes it before the next one.
    A failure to open a session ends the sequence immediately.  When every
    attempt raises, the last failure message becomes the "error" Outcome.
    """
    logger = logger or get_logger()
    max_retries = config.get("max_retries", DEFAULT_MAX_RETRIES)
    last_error = ""

    for attempt in range(1, max_retries + 1):
        logger.info(f"Processing ICCID: {iccid} (Attempt {attempt}/{max_retries})")
        try:
            async with driver.open_session() as session:
                try:
                    return await run_attempt(session, iccid, config, logger=logger)
                except Exception as e:
                    last_error = str(e) or e.__class__.__name__
                    logger.error(f"ICCID {iccid} error on attempt {attempt}: {last_error}")
                    if config.get("capture_diagnostics"):
                        await session.capture_diagnostics(f"{iccid}_attempt{attempt}")
        except SessionOpenError as e:
            logger.error(f"ICCID {iccid} critical error: {e}")
            return Outcome(iccid, STATUS_ERROR, str(e))

    return Outcome(iccid, STATUS_ERROR, last_error)
