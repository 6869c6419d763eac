"""
Run-level mutual exclusion.

Only one activation run may be active at a time.  Two layers:

  threading.Lock  : two triggers inside one process (control server threads)
  filelock        : a CLI run and a server run on the same machine

A second run is rejected with RunInProgressError, never queued.
"""

import logging
import os
import threading

from filelock import FileLock, Timeout

from iccid_activator.errors import RunInProgressError
from iccid_activator.utils import get_logger


class RunLock:
    """Non-blocking run lock.  Use as a context manager around a whole run."""

    def __init__(self, lock_path: str, *, logger: logging.Logger = None):
        self._lock_path = lock_path
        # Acquired on a request thread, released on the run thread
        self._file_lock = FileLock(lock_path, thread_local=False)
        self._thread_lock = threading.Lock()
        self._logger = logger or get_logger()

    @property
    def locked(self) -> bool:
        return self._thread_lock.locked()

    def acquire(self) -> None:
        if not self._thread_lock.acquire(blocking=False):
            raise RunInProgressError("An activation run is already in progress in this process")
        try:
            directory = os.path.dirname(self._lock_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self._file_lock.acquire(timeout=0)
        except Timeout as e:
            self._thread_lock.release()
            raise RunInProgressError(
                f"Another activation run holds {self._lock_path}"
            ) from e
        except BaseException:
            self._thread_lock.release()
            raise
        self._logger.debug(f"Run lock acquired: {self._lock_path}")

    def release(self) -> None:
        try:
            self._file_lock.release()
        finally:
            self._thread_lock.release()
        self._logger.debug(f"Run lock released: {self._lock_path}")

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
