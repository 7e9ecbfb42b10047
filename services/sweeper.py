"""Periodic removal of revoked and expired refresh-token rows."""
from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60 * 60


class TokenSweeper:
    def __init__(self, sessions, storage, interval: float = SWEEP_INTERVAL_SECONDS):
        self._sessions = sessions
        self._storage = storage
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """Sweep now and return the number of deleted rows. Errors are logged, not raised."""
        try:
            deleted = self._sessions.sweep_expired()
        except Exception:
            logger.exception("refresh token sweep failed")
            return 0
        finally:
            self._storage.close()
        if deleted:
            logger.info("swept %d revoked or expired refresh token(s)", deleted)
        return deleted

    def _loop(self):
        while not self._stop.wait(self._interval):
            self.run_once()

    def start(self) -> None:
        """Sweep once immediately, then every interval on a daemon thread."""
        self.run_once()
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="token-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
