"""
ICCID input loader.

Reads a delimited file with an `iccid` header column and returns the
values deduplicated in first-occurrence order.  Any problem reading the
file raises InputLoadError before a single ICCID is scheduled.
"""

import csv
import logging
import os

from iccid_activator.errors import InputLoadError
from iccid_activator.utils import get_logger

ICCID_COLUMN = "iccid"


def dedupe(values) -> list[str]:
    """Drop repeats while keeping the order of first occurrence."""
    return list(dict.fromkeys(values))


def load_iccids(path: str, *, logger: logging.Logger = None) -> list[str]:
    logger = logger or get_logger()

    if not os.path.isfile(path):
        raise InputLoadError(f"Input file not found: {path}")

    try:
        # utf-8-sig swallows the BOM spreadsheet exports like to add
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            fields = [name.strip() for name in (reader.fieldnames or [])]
            if ICCID_COLUMN not in fields:
                raise InputLoadError(f"Input file {path} has no '{ICCID_COLUMN}' column (found: {fields})")
            reader.fieldnames = fields

            raw = []
            for row in reader:
                value = (row.get(ICCID_COLUMN) or "").strip()
                if value:
                    raw.append(value)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise InputLoadError(f"Could not read input file {path}: {e}") from e

    iccids = dedupe(raw)
    dropped = len(raw) - len(iccids)
    logger.info(
        f"Loaded {len(iccids)} ICCID(s) from {path}"
        + (f" ({dropped} duplicate(s) dropped)" if dropped else "")
    )
    return iccids
