"""
Client for the HTTP control server.

Retry policy: 1 automatic retry on ConnectionError/Timeout with a short
backoff.  Unlike the server endpoints, start() surfaces a 409 as
RunInProgressError so the CLI can report it and exit non-zero.
"""

import logging
import time

import requests as _requests

from iccid_activator.errors import ActivatorError, RunInProgressError
from iccid_activator.utils import get_logger

FINAL_STATES = ("finished", "failed")


class ControlClient:
    _TIMEOUT = 10       # seconds per HTTP request
    _RETRY_BACKOFF = 2  # seconds to wait before retry

    def __init__(self, server_url: str, *, logger: logging.Logger = None):
        self._base = server_url.rstrip("/")
        self._logger = logger or get_logger()

    # ── Internal helpers ──────────────────────────────────────────────────

    def _request(self, method: str, path: str) -> _requests.Response:
        url = f"{self._base}{path}"
        for attempt in range(2):
            try:
                return _requests.request(method, url, timeout=self._TIMEOUT)
            except (_requests.ConnectionError, _requests.Timeout) as exc:
                if attempt == 0:
                    self._logger.warning(f"  [control] {method} {path} failed ({exc}), retrying in {self._RETRY_BACKOFF}s...")
                    time.sleep(self._RETRY_BACKOFF)
                else:
                    raise ActivatorError(f"Control server unreachable at {self._base}: {exc}") from exc

    def _json(self, method: str, path: str) -> dict:
        resp = self._request(method, path)
        try:
            resp.raise_for_status()
        except _requests.HTTPError as exc:
            raise ActivatorError(f"{method} {path} failed: {exc}") from exc
        return resp.json()

    # ── Public API ────────────────────────────────────────────────────────

    def health(self) -> dict:
        return self._json("GET", "/health")

    def start(self) -> int:
        """Trigger a run and return its id."""
        resp = self._request("POST", "/start")
        if resp.status_code == 409:
            raise RunInProgressError(resp.json().get("error", "run already in progress"))
        try:
            resp.raise_for_status()
        except _requests.HTTPError as exc:
            raise ActivatorError(f"POST /start failed: {exc}") from exc
        run_id = resp.json().get("run_id")
        self._logger.info(f"  [control] Run #{run_id} started on {self._base}")
        return run_id

    def status(self) -> dict:
        return self._json("GET", "/status")

    def results(self) -> list[dict]:
        return self._json("GET", "/results").get("results", [])

    def wait_for_completion(self, *, poll_interval: float = 5, timeout: float = None) -> dict:
        """Poll /status until the run reaches a final state; return that status."""
        deadline = time.time() + timeout if timeout else None
        while True:
            status = self.status()
            if status.get("state") in FINAL_STATES:
                return status
            progress = status.get("progress") or {}
            self._logger.info(
                f"  [control] {status.get('state')}: "
                f"{progress.get('completed', 0)}/{progress.get('total', 0)} done, "
                f"{progress.get('in_flight', 0)} in flight"
            )
            if deadline is not None and time.time() >= deadline:
                raise ActivatorError(f"Run did not finish within {timeout}s")
            time.sleep(poll_interval)
