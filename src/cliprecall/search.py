import logging
import threading
from collections.abc import Callable

from cliprecall.config import SEARCH_DEBOUNCE, Settings
from cliprecall.fuzzy import rank_by_fuzzy_query
from cliprecall.models import ClipboardEntry
from cliprecall.storage import StorageManager

logger = logging.getLogger(__name__)

TAG_PREFIX = "tag:"


def parse_tag_filter(query: str) -> tuple[str | None, str]:
    """Split a leading ``tag:<name>`` token off a query.

    Returns:
        The tag (or None) and the remaining search text.
    """
    q = query.strip() if query else ""
    if not q.lower().startswith(TAG_PREFIX):
        return None, q

    after = q[len(TAG_PREFIX):]
    for i, c in enumerate(after):
        if c.isspace():
            tag = after[:i].strip()
            return (tag or None), after[i + 1:].strip()
    tag = after.strip()
    return (tag or None), ""


def _display_order(entry: ClipboardEntry) -> tuple[bool, float]:
    return (not entry.pinned, -entry.created_at.timestamp())


class SearchSession:
    """Serves search-as-you-type queries over the history.

    ``query`` evaluates immediately. ``submit`` debounces: each call replaces
    the pending evaluation, and results of a superseded query are dropped.
    """

    def __init__(self, storage: StorageManager, settings: Settings | None = None, debounce: float = SEARCH_DEBOUNCE):
        self._storage = storage
        self._settings = settings or Settings()
        self._debounce = debounce
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    def query(self, text: str) -> list[ClipboardEntry]:
        entries = self._storage.list_entries(limit=self._settings.max_history, include_image_bytes=False)
        tag, search = parse_tag_filter(text)
        if tag:
            entries = [e for e in entries if tag in e.tags]
        results = rank_by_fuzzy_query(entries, search)
        # pins first, then recency; the sort is stable so ties keep match order
        results.sort(key=_display_order)
        return results

    def submit(self, text: str, callback: Callable[[list[ClipboardEntry]], None]) -> None:
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            timer = threading.Timer(self._debounce, self._evaluate, args=(self._generation, text, callback))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._generation += 1

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _evaluate(self, generation: int, text: str, callback: Callable[[list[ClipboardEntry]], None]) -> None:
        if not self._is_current(generation):
            return
        results = self.query(text)
        if not self._is_current(generation):
            return
        try:
            callback(results)
        except Exception:
            logger.exception("Search callback failed")
