# ABOUTME: Background thread that periodically deletes expired book locks.
# ABOUTME: Started and stopped with the HTTP app; the CLI runs the same sweep on demand.

import logging
import sqlite3
import threading
from collections.abc import Callable

from bookswap.core.locks import BookLockManager

logger = logging.getLogger(__name__)


class LockSweeper:
    """Runs ``cleanup_expired_locks`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, connect: Callable[[], sqlite3.Connection], interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._connect = connect
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sweep_once(self) -> int:
        conn = self._connect()
        try:
            return BookLockManager(conn).cleanup_expired_locks()
        finally:
            conn.close()

    def _run(self) -> None:
        logger.debug("Lock sweeper started, interval %.0fs", self._interval)
        while not self._stop.wait(self._interval):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Lock sweep failed")
        logger.debug("Lock sweeper stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="lock-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
