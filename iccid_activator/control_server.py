"""
HTTP control server: trigger and watch activation runs remotely.

A small Flask app in front of RunController.  Each POST /start kicks off one
full batch on a background thread; a second /start while a run is active is
rejected with 409 (see run_lock.RunLock).

Usage:
    python -m iccid_activator.control_server [OPTIONS]

Options:
    --config PATH   Path to config.yaml (default: ./config.yaml)
    --host TEXT     Bind address (default: control_host from config)
    --port INT      Bind port (default: control_port from config)
    --auto-start    Start one run as soon as the server is up
"""

import argparse
import logging
import sys
import threading
import time

from flask import Flask, jsonify

from iccid_activator.errors import ConfigError, RunInProgressError
from iccid_activator.run_lock import RunLock
from iccid_activator.runner import log_config, run_batch
from iccid_activator.scheduler import SchedulerStats
from iccid_activator.utils import get_logger, get_worker_id, load_config, setup_logging

# ── Run states ───────────────────────────────────────────────────────────
STATE_IDLE     = "idle"
STATE_RUNNING  = "running"
STATE_FINISHED = "finished"
STATE_FAILED   = "failed"


class RunController:
    """
    Owns the run lock and the state of the most recent run.

    `run_fn` has the signature of runner.run_batch and is called on a
    daemon thread; it is injectable so tests can avoid a real browser.
    """

    def __init__(self, config: dict, *, logger: logging.Logger = None, run_fn=run_batch):
        self.config = config
        self._logger = logger or get_logger()
        self._run_fn = run_fn
        self._run_lock = RunLock(config["lock_file"], logger=self._logger)
        self._state_lock = threading.Lock()
        self._thread = None

        self.state = STATE_IDLE
        self.run_id = 0
        self.started_at = None
        self.finished_at = None
        self.last_error = None
        self.last_report = None
        self.stats = SchedulerStats()
        self._outcomes: list = []

    def start(self) -> int:
        """Start a run in the background.  Raises RunInProgressError if one is active."""
        self._run_lock.acquire()
        with self._state_lock:
            self.run_id += 1
            run_id = self.run_id
            self.state = STATE_RUNNING
            self.started_at = time.time()
            self.finished_at = None
            self.last_error = None
            self.last_report = None
            self.stats = SchedulerStats()
            self._outcomes = []

        self._thread = threading.Thread(
            target=self._run, args=(run_id, self.stats), daemon=True, name=f"activation-run-{run_id}"
        )
        self._thread.start()
        self._logger.info(f"Run #{run_id} started")
        return run_id

    def _record(self, outcome) -> None:
        with self._state_lock:
            self._outcomes.append(outcome)

    def _run(self, run_id: int, stats: SchedulerStats) -> None:
        try:
            report = self._run_fn(self.config, logger=self._logger, on_outcome=self._record, stats=stats)
            with self._state_lock:
                self.last_report = report
                self.state = STATE_FINISHED
            self._logger.info(f"Run #{run_id} finished")
        except Exception as e:
            with self._state_lock:
                self.last_error = str(e)
                self.state = STATE_FAILED
            self._logger.error(f"Run #{run_id} failed: {e}")
        finally:
            with self._state_lock:
                self.finished_at = time.time()
            self._run_lock.release()

    def wait(self, timeout: float = None) -> bool:
        """Block until the current run thread exits.  Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def status(self) -> dict:
        with self._state_lock:
            return {
                "worker": get_worker_id(),
                "state": self.state,
                "run_id": self.run_id,
                "started_at": self.started_at,
                "finished_at": self.finished_at,
                "progress": self.stats.to_dict(),
                "summary": self.last_report.summary.to_dict() if self.last_report else None,
                "error": self.last_error,
            }

    def results(self) -> list[dict]:
        """Outcomes of the current run so far, or of the last finished run."""
        with self._state_lock:
            return [o.to_record() for o in self._outcomes]


def create_app(controller: RunController) -> Flask:
    app = Flask(__name__)
    start_time = time.time()

    @app.route("/health", methods=["GET"])
    def health():
        """Health check: verifies the server is running."""
        return jsonify({"status": "ok", "uptime": int(time.time() - start_time)})

    @app.route("/start", methods=["POST"])
    def start():
        """Trigger one activation run.  409 while another run holds the lock."""
        try:
            run_id = controller.start()
        except RunInProgressError as e:
            return jsonify({"ok": False, "error": str(e)}), 409
        return jsonify({"ok": True, "run_id": run_id}), 202

    @app.route("/status", methods=["GET"])
    def status():
        return jsonify(controller.status())

    @app.route("/results", methods=["GET"])
    def results():
        return jsonify({"run_id": controller.run_id, "results": controller.results()})

    return app


def main() -> int:
    parser = argparse.ArgumentParser(description="HTTP control server for ICCID activation runs")
    parser.add_argument("--config", "-c", default=None, help="Path to config.yaml (default: ./config.yaml)")
    parser.add_argument("--host", default=None, help="Bind address (default: control_host from config)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: control_port from config)")
    parser.add_argument("--auto-start", action="store_true", help="Start one run immediately")
    args = parser.parse_args()

    logger = setup_logging()
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ConfigError) as e:
        logger.error(f"Configuration error: {e}")
        return 1
    log_config(config, logger)

    host = args.host or config["control_host"]
    port = args.port or config["control_port"]

    controller = RunController(config, logger=logger)
    app = create_app(controller)
    # Suppress Flask's default request logging
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    if args.auto_start or config["auto_start"]:
        try:
            controller.start()
        except RunInProgressError as e:
            logger.warning(f"Auto-start skipped: {e}")

    logger.info("=" * 60)
    logger.info(f"  Control server running on {host}:{port}")
    logger.info(f"  Lock file:      {config['lock_file']}")
    logger.info("=" * 60)

    app.run(host=host, port=port, threaded=True, use_reloader=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
