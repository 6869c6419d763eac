"""
Value types shared by the activation flow, scheduler and reports.
"""

from __future__ import annotations

from dataclasses import dataclass

# ── Outcome statuses ─────────────────────────────────────────────────────
STATUS_SUCCESS           = "success"
STATUS_ALREADY_ACTIVATED = "already_activated"
STATUS_PROCESSING        = "processing"
STATUS_INVALID           = "invalid_iccid"
STATUS_FAILED            = "activation_failed"
STATUS_ERROR             = "error"

ALL_STATUSES = (
    STATUS_SUCCESS,
    STATUS_ALREADY_ACTIVATED,
    STATUS_PROCESSING,
    STATUS_INVALID,
    STATUS_FAILED,
    STATUS_ERROR,
)

# Texts rendered by the activation site.  Overridable via `markers:` in config.yaml.
DEFAULT_MARKER_TEXTS = {
    "already_activated": "Your SIM card has been successfully activated",
    "system_issue":      "The system is currently experiencing some issues",
    "processing":        "Your activation order is being processed",
    "success":           "Your SIM card has been successfully activated",
}

PROCESSING_DETAIL = "Your activation order is being processed, please try again later"
NO_RESPONSE_DETAIL = "No expected response received"


@dataclass(frozen=True)
class Outcome:
    """Terminal result for one ICCID."""

    iccid: str
    status: str
    detail: str = ""

    def __post_init__(self) -> None:
        if self.status not in ALL_STATUSES:
            raise ValueError(f"Unknown outcome status: {self.status!r}")

    def to_record(self) -> dict:
        """Row shape used by the results CSV and the control server."""
        return {"iccid": self.iccid, "status": self.status, "error_detail": self.detail}


@dataclass(frozen=True)
class Marker:
    """A text shown by the remote site and the status it stands for."""

    text: str
    status: str
    detail: str


@dataclass(frozen=True)
class RunSummary:
    total: int = 0
    success: int = 0
    already_activated: int = 0
    processing: int = 0
    invalid: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "already_activated": self.already_activated,
            "processing": self.processing,
            "invalid": self.invalid,
            "failed": self.failed,
        }
