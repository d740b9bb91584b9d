import logging
import threading

from cliprecall.config import SWEEP_INTERVAL
from cliprecall.storage import StorageManager

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Deletes expired entries on a fixed period, independent of the monitor."""

    def __init__(self, storage: StorageManager, interval: float = SWEEP_INTERVAL):
        self._storage = storage
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> int:
        try:
            return self._storage.sweep_expired()
        except Exception:
            logger.exception("Expiry sweep failed")
            return 0

    def start(self) -> None:
        if self._thread is not None:
            logger.warning("Sweeper already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="cliprecall-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=5.0)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.run_once()
