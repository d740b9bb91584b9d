import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from cliprecall.config import MAX_IMAGE_SIZE, MAX_TEXT_SIZE, POLL_INTERVAL, Settings
from cliprecall.models import ContentType
from cliprecall.pasteboard import PasteboardSource
from cliprecall.sensitive import classify
from cliprecall.storage import StorageManager
from cliprecall.utils import compute_hash, from_timestamp

logger = logging.getLogger(__name__)


class ClipboardMonitor:
    """Polls a pasteboard and records each change in the history store.

    Detection runs on the polling thread. Hashing, classification and the
    store write run on a single-worker executor, so writes are applied in
    the order changes were seen. At most one change is in flight; the last
    observed change count only advances once its write has finished.
    """

    def __init__(
        self,
        storage: StorageManager,
        pasteboard: PasteboardSource,
        settings: Settings | None = None,
        on_change: Callable[[], None] | None = None,
        executor: Executor | None = None,
        poll_interval: float = POLL_INTERVAL,
        clock: Callable[[], float] | None = None,
    ):
        self._storage = storage
        self._pasteboard = pasteboard
        self._settings = settings or Settings()
        self._on_change = on_change
        self._owns_executor = executor is None
        self._executor = executor or self._new_executor()
        self._poll_interval = poll_interval
        self._clock = clock or time.time
        self._lock = threading.RLock()
        self._pending: Future | None = None
        self._last_change_count = self._pasteboard.change_count()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor_closed = False

    def check_clipboard(self) -> bool:
        """Look for a pasteboard change and queue it for recording.

        Returns True if a change was detected and handed to the worker.
        """
        try:
            current_count = self._pasteboard.change_count()
        except Exception:
            logger.exception("Error reading pasteboard change count")
            return False

        with self._lock:
            if current_count == self._last_change_count:
                return False
            if self._pending is not None and not self._pending.done():
                return False

            try:
                text, image = self._read_clipboard()
            except Exception:
                logger.exception("Error reading clipboard")
                self._last_change_count = current_count
                return False

            try:
                self._pending = self._executor.submit(self._process_change, current_count, text, image)
            except RuntimeError:
                logger.exception("Cannot queue clipboard change %d", current_count)
                return False
        return True

    def sync_change_count(self) -> None:
        """Adopt the current change count without recording it."""
        with self._lock:
            self._last_change_count = self._pasteboard.change_count()

    def flush(self, timeout: float | None = None) -> None:
        """Block until the in-flight change, if any, has been recorded."""
        with self._lock:
            pending = self._pending
        if pending is not None:
            pending.result(timeout=timeout)

    def start(self) -> None:
        if self._thread is not None:
            logger.warning("Monitor already running")
            return
        if self._owns_executor and self._executor_closed:
            self._executor = self._new_executor()
            self._executor_closed = False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="cliprecall-monitor", daemon=True)
        self._thread.start()
        logger.info("Clipboard monitoring started")

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=5.0)
        self._thread = None
        self.flush()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
            self._executor_closed = True
        logger.info("Clipboard monitoring stopped")

    @staticmethod
    def _new_executor() -> Executor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="cliprecall-ingest")

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self._poll_interval):
            self.check_clipboard()

    def _read_clipboard(self) -> tuple[str | None, bytes | None]:
        text = self._pasteboard.read_text()
        if text:
            return text, None
        return None, self._pasteboard.read_image()

    def _process_change(self, change_count: int, text: str | None, image: bytes | None) -> None:
        try:
            if self._record(text, image) and self._on_change:
                self._on_change()
        except Exception:
            logger.exception("Error recording clipboard change")
        finally:
            with self._lock:
                self._last_change_count = change_count

    def _record(self, text: str | None, image: bytes | None) -> bool:
        if text:
            return self._record_text(text)
        if image:
            return self._record_image(image)
        return False

    def _record_text(self, text: str) -> bool:
        text_bytes = text.encode("utf-8")
        if len(text_bytes) > MAX_TEXT_SIZE:
            logger.warning("Text too large (%d bytes), skipping", len(text_bytes))
            return False

        content_hash = compute_hash(text_bytes)
        kind = classify(text)
        if kind is None:
            entry_id = self._storage.insert_or_touch(ContentType.TEXT, text, None, content_hash)
            return entry_id is not None

        if not self._settings.store_sensitive:
            logger.debug("Not storing sensitive clipboard text (%s)", kind.value)
            return False

        expires_at = from_timestamp(self._clock() + self._settings.sensitive_ttl)
        logger.debug("Storing sensitive clipboard text (%s) until %s", kind.value, expires_at)
        entry_id = self._storage.insert_or_touch(
            ContentType.TEXT,
            text,
            None,
            content_hash,
            expires_at=expires_at,
            is_sensitive=True,
        )
        return entry_id is not None

    def _record_image(self, img_bytes: bytes) -> bool:
        if len(img_bytes) > MAX_IMAGE_SIZE:
            logger.warning("Image too large (%d bytes), skipping", len(img_bytes))
            return False

        content_hash = compute_hash(img_bytes)
        entry_id = self._storage.insert_or_touch(ContentType.IMAGE, None, img_bytes, content_hash)
        return entry_id is not None
