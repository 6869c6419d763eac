"""
Bounded-concurrency scheduler.

Every ICCID gets its own task, but a semaphore of width `max_workers`
gates admission, so at most K activations (and therefore K browsing
contexts) exist at any instant.  Tasks are created in input order and the
semaphore wakes waiters first-in first-out, which keeps admission FIFO.

Outcomes are appended as tasks finish, so the result order follows
completion time, not input order.  All appends happen on the event loop
thread; no lock is needed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from iccid_activator.activation import activate
from iccid_activator.models import STATUS_ERROR, Outcome
from iccid_activator.utils import get_logger

DEFAULT_MAX_WORKERS = 3


@dataclass
class SchedulerStats:
    """Live counters, readable while a run is in progress."""

    total: int = 0
    in_flight: int = 0
    max_in_flight: int = 0
    completed: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "in_flight": self.in_flight,
            "max_in_flight": self.max_in_flight,
            "completed": self.completed,
        }


async def run_scheduler(
    driver,
    iccids: Iterable[str],
    config: dict,
    *,
    logger: logging.Logger = None,
    on_outcome: Optional[Callable[[Outcome], None]] = None,
    stats: SchedulerStats = None,
) -> list[Outcome]:
    """
    Drive `iccids` through activate() with at most `max_workers` in flight.

    Returns one Outcome per distinct ICCID, in completion order.
    """
    logger = logger or get_logger()
    stats = stats if stats is not None else SchedulerStats()
    max_workers = config.get("max_workers", DEFAULT_MAX_WORKERS)

    # Input is normally deduplicated already; never schedule an ICCID twice.
    queue = list(dict.fromkeys(iccids))
    stats.total = len(queue)
    results: list[Outcome] = []
    semaphore = asyncio.Semaphore(max_workers)

    logger.info(f"Scheduling {len(queue)} ICCID(s) across {max_workers} slot(s)")

    async def _run_one(position: int, iccid: str) -> None:
        async with semaphore:
            stats.in_flight += 1
            stats.max_in_flight = max(stats.max_in_flight, stats.in_flight)
            logger.info(f"[{position}/{stats.total}] Start ICCID {iccid}")
            try:
                outcome = await activate(driver, iccid, config, logger=logger)
            except Exception as e:
                # activate() converts expected failures itself; anything
                # reaching here is unexpected but still yields an Outcome.
                logger.error(f"ICCID {iccid} unexpected failure: {e!r}")
                outcome = Outcome(iccid, STATUS_ERROR, str(e) or e.__class__.__name__)
            finally:
                stats.in_flight -= 1

        results.append(outcome)
        stats.completed += 1
        logger.info(
            f"Result ICCID {iccid}: {outcome.status}"
            f"{' - ' + outcome.detail if outcome.detail else ''} "
            f"({stats.completed}/{stats.total} done)"
        )
        if on_outcome is not None:
            try:
                on_outcome(outcome)
            except Exception as cb_err:
                logger.warning(f"Outcome callback failed for {iccid}: {cb_err}")

    await asyncio.gather(*(_run_one(i, iccid) for i, iccid in enumerate(queue, start=1)))
    return results
