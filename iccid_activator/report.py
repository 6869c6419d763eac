"""
Run aggregation and CSV output.

summarize() is a pure reduction over the Outcome list; the write_*
helpers are the only functions here that touch the filesystem.
"""

import csv
import logging
import os
from collections import Counter

from iccid_activator.models import (
    STATUS_ALREADY_ACTIVATED,
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_INVALID,
    STATUS_PROCESSING,
    STATUS_SUCCESS,
    Outcome,
    RunSummary,
)
from iccid_activator.utils import get_logger

RESULT_FIELDS = ["iccid", "status", "error_detail"]
INVALID_FIELDS = ["iccid"]


def summarize(outcomes: list[Outcome]) -> RunSummary:
    """Tally outcomes; activation_failed and error share the 'failed' bucket."""
    counts = Counter(o.status for o in outcomes)
    return RunSummary(
        total=len(outcomes),
        success=counts[STATUS_SUCCESS],
        already_activated=counts[STATUS_ALREADY_ACTIVATED],
        processing=counts[STATUS_PROCESSING],
        invalid=counts[STATUS_INVALID],
        failed=counts[STATUS_FAILED] + counts[STATUS_ERROR],
    )


def invalid_records(outcomes: list[Outcome]) -> list[dict]:
    return [{"iccid": o.iccid} for o in outcomes if o.status == STATUS_INVALID]


def _write_csv(path: str, fields: list[str], rows: list[dict]) -> None:
    """Write rows atomically (temp file + rename)."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fields)
        writer.writeheader()
        writer.writerows(rows)
    os.replace(tmp, path)


def write_results(outcomes: list[Outcome], path: str, *, logger: logging.Logger = None) -> str:
    logger = logger or get_logger()
    _write_csv(path, RESULT_FIELDS, [o.to_record() for o in outcomes])
    logger.info(f"Results saved to {path}")
    return path


def write_invalid(outcomes: list[Outcome], path: str, *, logger: logging.Logger = None) -> str | None:
    """Write the invalid-ICCID list.  Nothing is written when there are none."""
    logger = logger or get_logger()
    rows = invalid_records(outcomes)
    if not rows:
        return None
    _write_csv(path, INVALID_FIELDS, rows)
    logger.info(f"Invalid ICCIDs ({len(rows)}) saved to {path}")
    return path


def log_summary(summary: RunSummary, logger: logging.Logger = None) -> None:
    logger = logger or get_logger()
    logger.info("=" * 60)
    logger.info("ACTIVATION SUMMARY")
    logger.info(f"  Total:             {summary.total}")
    logger.info(f"  Success:           {summary.success}")
    logger.info(f"  Already activated: {summary.already_activated}")
    logger.info(f"  Processing:        {summary.processing}")
    logger.info(f"  Invalid:           {summary.invalid}")
    logger.info(f"  Failed:            {summary.failed}")
    logger.info("=" * 60)
