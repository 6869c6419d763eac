"""
One complete activation run: load input -> launch browser -> schedule ->
summarize -> write CSVs.

The caller decides about run-level locking (see run_lock.RunLock); the CLI
wraps run_batch() in the lock, the control server takes it on the request
thread and hands it to the run thread.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from iccid_activator.driver import PageDriver
from iccid_activator.errors import SessionOpenError
from iccid_activator.loader import load_iccids
from iccid_activator.models import STATUS_ERROR, Outcome, RunSummary
from iccid_activator.report import log_summary, summarize, write_invalid, write_results
from iccid_activator.scheduler import SchedulerStats, run_scheduler
from iccid_activator.utils import get_logger


@dataclass
class RunReport:
    outcomes: list = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)
    results_file: str | None = None
    invalid_file: str | None = None


def log_config(config: dict, logger: logging.Logger) -> None:
    logger.info("Configuration loaded:")
    logger.info(f"  URL:              {config['url']}")
    logger.info(f"  Input:            {config['input_file']}")
    logger.info(f"  Workers:          {config['max_workers']}")
    logger.info(f"  Retries:          {config['max_retries']}")
    logger.info(f"  Headless:         {config['headless']}")
    logger.info(f"  Timeouts (ms):    nav={config['nav_timeout_ms']}  marker={config['marker_timeout_ms']}")


async def run_batch_async(
    config: dict,
    *,
    logger: logging.Logger = None,
    on_outcome=None,
    stats: SchedulerStats = None,
    driver_factory=PageDriver,
) -> RunReport:
    logger = logger or get_logger()

    # InputLoadError propagates: nothing has been scheduled yet
    iccids = load_iccids(config["input_file"], logger=logger)

    outcomes: list[Outcome] = []
    if not iccids:
        logger.warning("No ICCIDs to process")
    else:
        try:
            async with driver_factory(config, logger=logger) as driver:
                outcomes = await run_scheduler(
                    driver, iccids, config,
                    logger=logger, on_outcome=on_outcome, stats=stats,
                )
        except SessionOpenError as e:
            # No browser means no attempt can run; each ICCID still gets its Outcome.
            logger.error(f"Browser unavailable, marking {len(iccids)} ICCID(s) as error: {e}")
            outcomes = [Outcome(iccid, STATUS_ERROR, str(e)) for iccid in iccids]
            if on_outcome is not None:
                for outcome in outcomes:
                    on_outcome(outcome)

    summary = summarize(outcomes)
    log_summary(summary, logger)

    report = RunReport(outcomes=outcomes, summary=summary)
    report.results_file = write_results(outcomes, config["results_file"], logger=logger)
    report.invalid_file = write_invalid(outcomes, config["invalid_file"], logger=logger)
    return report


def run_batch(config: dict, **kwargs) -> RunReport:
    """Blocking wrapper: runs the whole batch on a fresh event loop."""
    return asyncio.run(run_batch_async(config, **kwargs))
