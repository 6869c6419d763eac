"""
tests/test_control_client.py

ControlClient with requests.request patched out.
"""

from __future__ import annotations

import pytest
import requests

from iccid_activator import control_client
from iccid_activator.control_client import ControlClient
from iccid_activator.errors import ActivatorError, RunInProgressError


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: dict = None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self) -> dict:
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class Server:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[tuple] = []

    def __call__(self, method, url, timeout):
        self.calls.append((method, url))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture()
def no_sleep(monkeypatch):
    monkeypatch.setattr(control_client.time, "sleep", lambda s: None)


def _client(monkeypatch, server: Server) -> ControlClient:
    monkeypatch.setattr(control_client._requests, "request", server)
    return ControlClient("http://runner:8099/")


class TestControlClient:
    def test_start_returns_run_id(self, monkeypatch) -> None:
        server = Server(FakeResponse(202, {"ok": True, "run_id": 3}))
        assert _client(monkeypatch, server).start() == 3
        assert server.calls == [("POST", "http://runner:8099/start")]

    def test_start_conflict(self, monkeypatch) -> None:
        server = Server(FakeResponse(409, {"ok": False, "error": "busy"}))
        with pytest.raises(RunInProgressError, match="busy"):
            _client(monkeypatch, server).start()

    def test_retries_once_on_connection_error(self, monkeypatch, no_sleep) -> None:
        server = Server(requests.ConnectionError("refused"), FakeResponse(200, {"status": "ok"}))
        assert _client(monkeypatch, server).health() == {"status": "ok"}
        assert len(server.calls) == 2

    def test_gives_up_after_retry(self, monkeypatch, no_sleep) -> None:
        server = Server(requests.Timeout("slow"))
        with pytest.raises(ActivatorError, match="unreachable"):
            _client(monkeypatch, server).status()
        assert len(server.calls) == 2

    def test_http_error(self, monkeypatch) -> None:
        server = Server(FakeResponse(500))
        with pytest.raises(ActivatorError):
            _client(monkeypatch, server).status()

    def test_results(self, monkeypatch) -> None:
        rows = [{"iccid": "1", "status": "success", "error_detail": ""}]
        server = Server(FakeResponse(200, {"run_id": 1, "results": rows}))
        assert _client(monkeypatch, server).results() == rows

    def test_wait_for_completion(self, monkeypatch, no_sleep) -> None:
        server = Server(
            FakeResponse(200, {"state": "running", "progress": {"completed": 1, "total": 3}}),
            FakeResponse(200, {"state": "running", "progress": {"completed": 2, "total": 3}}),
            FakeResponse(200, {"state": "finished", "summary": {"total": 3}}),
        )
        status = _client(monkeypatch, server).wait_for_completion(poll_interval=0)
        assert status["state"] == "finished"
        assert len(server.calls) == 3
