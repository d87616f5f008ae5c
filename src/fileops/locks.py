import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Set

log = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.01


class LockTimeoutError(Exception):
    """Raised when a file lock cannot be acquired within the timeout."""


class FileLockManager:
    """Per-path exclusive locks for edits within this process.

    A path is held by at most one caller; acquisition polls until ``timeout`` expires.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout if timeout > 0 else 1.0
        self._guard = threading.Lock()
        self._held: Set[str] = set()

    def acquire(self, path: str, timeout: float | None = None) -> None:
        if not path:
            raise ValueError("path is required")
        timeout = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        while True:
            with self._guard:
                if path not in self._held:
                    self._held.add(path)
                    return
            if time.monotonic() >= deadline:
                raise LockTimeoutError(f"timeout acquiring lock for {path} after {timeout:.2f}s")
            time.sleep(POLL_INTERVAL_SECONDS)

    def release(self, path: str) -> None:
        with self._guard:
            if path not in self._held:
                log.warning(f"Release requested for unlocked path {path}")
                return
            self._held.discard(path)

    @contextmanager
    def locked(self, path: str, timeout: float | None = None) -> Iterator[None]:
        self.acquire(path, timeout)
        try:
            yield
        finally:
            self.release(path)
