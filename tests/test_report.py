"""
tests/test_report.py

Run summary reduction and the CSV writers.
"""

from __future__ import annotations

import csv

import pytest

from iccid_activator.models import (
    ALL_STATUSES,
    STATUS_ALREADY_ACTIVATED,
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_INVALID,
    STATUS_PROCESSING,
    STATUS_SUCCESS,
    Outcome,
    RunSummary,
)
from iccid_activator.report import invalid_records, summarize, write_invalid, write_results


@pytest.fixture()
def outcomes() -> list[Outcome]:
    return [
        Outcome("1", STATUS_SUCCESS, "ok"),
        Outcome("2", STATUS_ALREADY_ACTIVATED, "done before"),
        Outcome("3", STATUS_PROCESSING, "later"),
        Outcome("4", STATUS_INVALID, "system issue"),
        Outcome("5", STATUS_FAILED, "No expected response received"),
        Outcome("6", STATUS_ERROR, "Timeout 30000ms exceeded"),
        Outcome("7", STATUS_INVALID, "system issue"),
    ]


def _read(path) -> list[dict]:
    with open(path, encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))


class TestOutcome:
    def test_is_frozen(self) -> None:
        outcome = Outcome("1", STATUS_SUCCESS)
        with pytest.raises((AttributeError, TypeError)):
            outcome.status = STATUS_ERROR  # type: ignore[misc]

    def test_rejects_unknown_status(self) -> None:
        with pytest.raises(ValueError):
            Outcome("1", "maybe")

    def test_record_uses_error_detail_column(self) -> None:
        assert Outcome("1", STATUS_ERROR, "boom").to_record() == {
            "iccid": "1", "status": "error", "error_detail": "boom",
        }


class TestSummarize:
    def test_counts(self, outcomes) -> None:
        assert summarize(outcomes) == RunSummary(
            total=7, success=1, already_activated=1, processing=1, invalid=2, failed=2,
        )

    def test_empty(self) -> None:
        assert summarize([]) == RunSummary()

    @pytest.mark.parametrize("statuses", [
        list(ALL_STATUSES),
        [STATUS_ERROR] * 4,
        [STATUS_SUCCESS, STATUS_FAILED, STATUS_FAILED],
    ])
    def test_buckets_partition_the_outcomes(self, statuses) -> None:
        summary = summarize([Outcome(str(i), s) for i, s in enumerate(statuses)])
        parts = (
            summary.success + summary.already_activated + summary.processing
            + summary.invalid + summary.failed
        )
        assert parts == summary.total == len(statuses)

    def test_does_not_touch_outcomes(self, outcomes) -> None:
        before = list(outcomes)
        summarize(outcomes)
        assert outcomes == before


class TestInvalidRecords:
    def test_only_invalid_iccids(self, outcomes) -> None:
        assert invalid_records(outcomes) == [{"iccid": "4"}, {"iccid": "7"}]


class TestWriters:
    def test_write_results(self, outcomes, tmp_path) -> None:
        path = tmp_path / "out" / "activation_results.csv"
        write_results(outcomes, str(path))
        rows = _read(path)
        assert list(rows[0]) == ["iccid", "status", "error_detail"]
        assert [r["iccid"] for r in rows] == [o.iccid for o in outcomes]
        assert rows[5]["error_detail"] == "Timeout 30000ms exceeded"

    def test_write_invalid(self, outcomes, tmp_path) -> None:
        path = tmp_path / "invalid_iccids.csv"
        assert write_invalid(outcomes, str(path)) == str(path)
        assert _read(path) == [{"iccid": "4"}, {"iccid": "7"}]

    def test_write_invalid_skips_when_none(self, tmp_path) -> None:
        path = tmp_path / "invalid_iccids.csv"
        assert write_invalid([Outcome("1", STATUS_SUCCESS)], str(path)) is None
        assert not path.exists()
