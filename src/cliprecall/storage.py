import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager, suppress
from datetime import datetime
from pathlib import Path

from cliprecall.config import DB_PATH, DEFAULT_LIST_LIMIT, SEARCH_LIMIT, Settings
from cliprecall.models import ClipboardEntry, ContentType, format_tags, normalize_tags, parse_tags
from cliprecall.utils import from_timestamp, to_timestamp

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS clipboard_entries (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    content_type   TEXT NOT NULL CHECK(content_type IN ('text', 'image')),
    text_content   TEXT,
    image_data     BLOB,
    content_hash   TEXT NOT NULL,
    created_at     REAL NOT NULL,
    expires_at     REAL,
    pinned         INTEGER NOT NULL DEFAULT 0,
    is_sensitive   INTEGER NOT NULL DEFAULT 0,
    tags           TEXT
);
"""

INDEXES = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_content_hash ON clipboard_entries(content_hash);
CREATE INDEX IF NOT EXISTS idx_created_at ON clipboard_entries(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_expires_at ON clipboard_entries(expires_at);
"""

LIVE = "(expires_at IS NULL OR expires_at > ?)"
ORDER = "ORDER BY pinned DESC, created_at DESC, id DESC"
COLUMNS = "id, content_type, text_content, {image}, content_hash, created_at, expires_at, pinned, is_sensitive, tags"


def _columns(include_image_bytes: bool) -> str:
    return COLUMNS.format(image="image_data" if include_image_bytes else "NULL AS image_data")


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class StorageManager:
    """Owns the persisted clipboard history.

    Every write runs as one ``BEGIN IMMEDIATE`` transaction while holding the
    manager's lock, so writes apply one at a time in submission order and a
    reader never sees a half-applied insert and eviction. Storage errors are
    logged and absorbed: writes become no-ops and reads return empty results.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self._db_path = str(db_path) if db_path else str(DB_PATH)
        self._settings = settings or Settings()
        self._clock = clock or time.time
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        try:
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self.init_db()
        except sqlite3.Error:
            logger.exception("Cannot open clipboard history at %s, history is disabled", self._db_path)
            if self._conn is not None:
                self._conn.close()
            self._conn = None

    @property
    def available(self) -> bool:
        return self._conn is not None

    def init_db(self) -> None:
        self._conn.executescript(SCHEMA)
        self._migrate_schema()
        self._conn.executescript(INDEXES)

    def _migrate_schema(self) -> None:
        """Add new columns to existing databases and drop duplicate hashes."""
        cursor = self._conn.execute("PRAGMA table_info(clipboard_entries)")
        columns = {row[1] for row in cursor.fetchall()}
        if "expires_at" not in columns:
            self._conn.execute("ALTER TABLE clipboard_entries ADD COLUMN expires_at REAL")
        if "is_sensitive" not in columns:
            self._conn.execute("ALTER TABLE clipboard_entries ADD COLUMN is_sensitive INTEGER NOT NULL DEFAULT 0")
        if "tags" not in columns:
            self._conn.execute("ALTER TABLE clipboard_entries ADD COLUMN tags TEXT")
        # the unique index cannot be created over duplicates left by older versions
        self._conn.execute(
            """DELETE FROM clipboard_entries WHERE id NOT IN (
                   SELECT MAX(id) FROM clipboard_entries GROUP BY content_hash
               )"""
        )

    def _now(self) -> float:
        return self._clock()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._conn
            if conn is None:
                raise sqlite3.ProgrammingError("history store is closed")
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    with suppress(sqlite3.Error):
                        conn.execute("ROLLBACK")
                raise

    def _fetch_rows(self, sql: str, params: tuple, action: str) -> list[sqlite3.Row]:
        try:
            with self._lock:
                if self._conn is None:
                    return []
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error:
            logger.exception("Failed to %s", action)
            return []

    # -- writes --

    def insert_or_touch(
        self,
        content_type: ContentType,
        text_content: str | None,
        image_bytes: bytes | None,
        content_hash: str,
        expires_at: datetime | None = None,
        is_sensitive: bool = False,
    ) -> int | None:
        """Record an observation, or bump the recency of identical content.

        Returns the id of the new or touched row, or None if nothing was written.
        """
        if self._conn is None:
            return None
        if content_type == ContentType.TEXT:
            if text_content is None:
                logger.warning("Text entry without text content, skipping")
                return None
            image_bytes = None
        else:
            if not image_bytes:
                logger.warning("Image entry without image data, skipping")
                return None
            text_content = None

        now = self._now()
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT id, expires_at FROM clipboard_entries WHERE content_hash = ?",
                    (content_hash,),
                ).fetchone()
                if row is not None:
                    if row["expires_at"] is None or row["expires_at"] > now:
                        conn.execute(
                            "UPDATE clipboard_entries SET created_at = ? WHERE id = ?",
                            (now, row["id"]),
                        )
                        return row["id"]
                    # expired but not swept yet; the new observation replaces it
                    conn.execute("DELETE FROM clipboard_entries WHERE id = ?", (row["id"],))

                cursor = conn.execute(
                    """INSERT INTO clipboard_entries
                       (content_type, text_content, image_data, content_hash, created_at, expires_at, pinned, is_sensitive)
                       VALUES (?, ?, ?, ?, ?, ?, 0, ?)""",
                    (
                        ContentType(content_type).value,
                        text_content,
                        image_bytes,
                        content_hash,
                        now,
                        to_timestamp(expires_at),
                        int(is_sensitive),
                    ),
                )
                entry_id = cursor.lastrowid
                self._trim_to_max(conn, now)
                return entry_id
        except sqlite3.Error:
            logger.exception("Failed to record clipboard entry")
            return None

    def _trim_to_max(self, conn: sqlite3.Connection, now: float) -> int:
        cap = self._settings.max_history
        live = conn.execute(
            f"SELECT COUNT(*) AS cnt FROM clipboard_entries WHERE {LIVE}", (now,)
        ).fetchone()["cnt"]
        if live <= cap:
            return 0

        excess = live - cap
        cursor = conn.execute(
            f"""DELETE FROM clipboard_entries WHERE id IN (
                    SELECT id FROM clipboard_entries
                    WHERE {LIVE} AND pinned = 0
                    ORDER BY created_at ASC, id ASC
                    LIMIT ?
                )""",
            (now, excess),
        )
        deleted = cursor.rowcount
        if deleted < excess:
            logger.warning(
                "Pinned entries keep history above its limit of %d (%d live entries)",
                cap,
                live - deleted,
            )
        return deleted

    def sweep_expired(self) -> int:
        if self._conn is None:
            return 0
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM clipboard_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
                    (self._now(),),
                )
                deleted = cursor.rowcount
        except sqlite3.Error:
            logger.exception("Failed to sweep expired entries")
            return 0
        if deleted:
            logger.debug("Swept %d expired entries", deleted)
        return deleted

    def set_pinned(self, entry_id: int, pinned: bool) -> None:
        if self._conn is None:
            return
        try:
            with self._transaction() as conn:
                conn.execute(
                    "UPDATE clipboard_entries SET pinned = ? WHERE id = ?",
                    (int(pinned), entry_id),
                )
        except sqlite3.Error:
            logger.exception("Failed to update pin for entry %s", entry_id)

    def set_tags(self, entry_id: int, tags: Iterable[str]) -> None:
        if self._conn is None:
            return
        try:
            with self._transaction() as conn:
                conn.execute(
                    "UPDATE clipboard_entries SET tags = ? WHERE id = ?",
                    (format_tags(tags), entry_id),
                )
        except sqlite3.Error:
            logger.exception("Failed to set tags for entry %s", entry_id)

    def add_tag(self, entry_id: int, tag: str) -> None:
        trimmed = tag.strip()
        if not trimmed or self._conn is None:
            return
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT tags FROM clipboard_entries WHERE id = ?", (entry_id,)
                ).fetchone()
                if row is None:
                    return
                merged = normalize_tags(parse_tags(row["tags"]) + [trimmed])
                conn.execute(
                    "UPDATE clipboard_entries SET tags = ? WHERE id = ?",
                    (format_tags(merged), entry_id),
                )
        except sqlite3.Error:
            logger.exception("Failed to add tag to entry %s", entry_id)

    def delete_entry(self, entry_id: int) -> None:
        if self._conn is None:
            return
        try:
            with self._transaction() as conn:
                conn.execute("DELETE FROM clipboard_entries WHERE id = ?", (entry_id,))
        except sqlite3.Error:
            logger.exception("Failed to delete entry %s", entry_id)

    def clear_all(self) -> None:
        if self._conn is None:
            return
        try:
            with self._transaction() as conn:
                conn.execute("DELETE FROM clipboard_entries")
        except sqlite3.Error:
            logger.exception("Failed to clear history")

    # -- reads --

    def list_entries(self, limit: int = DEFAULT_LIST_LIMIT, include_image_bytes: bool = True) -> list[ClipboardEntry]:
        rows = self._fetch_rows(
            f"SELECT {_columns(include_image_bytes)} FROM clipboard_entries WHERE {LIVE} {ORDER} LIMIT ?",
            (self._now(), limit),
            "list entries",
        )
        return [self._row_to_entry(r) for r in rows]

    def search_entries(self, query: str | None, include_image_bytes: bool = True) -> list[ClipboardEntry]:
        q = query.strip() if query else ""
        if not q:
            return self.list_entries(include_image_bytes=include_image_bytes)
        rows = self._fetch_rows(
            f"""SELECT {_columns(include_image_bytes)} FROM clipboard_entries
                WHERE {LIVE} AND text_content LIKE ? ESCAPE '\\'
                {ORDER} LIMIT ?""",
            (self._now(), f"%{_escape_like(q)}%", SEARCH_LIMIT),
            "search entries",
        )
        return [self._row_to_entry(r) for r in rows]

    def get_entry(self, entry_id: int) -> ClipboardEntry | None:
        rows = self._fetch_rows(
            f"SELECT {_columns(True)} FROM clipboard_entries WHERE id = ? AND {LIVE}",
            (entry_id, self._now()),
            f"load entry {entry_id}",
        )
        return self._row_to_entry(rows[0]) if rows else None

    def fetch_image_bytes(self, entry_id: int) -> bytes | None:
        rows = self._fetch_rows(
            f"SELECT image_data FROM clipboard_entries WHERE id = ? AND content_type = 'image' AND {LIVE}",
            (entry_id, self._now()),
            f"load image for entry {entry_id}",
        )
        if not rows or rows[0]["image_data"] is None:
            return None
        return bytes(rows[0]["image_data"])

    def count(self) -> int:
        rows = self._fetch_rows(
            f"SELECT COUNT(*) AS cnt FROM clipboard_entries WHERE {LIVE}", (self._now(),), "count entries"
        )
        return rows[0]["cnt"] if rows else 0

    def count_pinned(self) -> int:
        rows = self._fetch_rows(
            f"SELECT COUNT(*) AS cnt FROM clipboard_entries WHERE pinned = 1 AND {LIVE}",
            (self._now(),),
            "count pinned entries",
        )
        return rows[0]["cnt"] if rows else 0

    def close(self) -> None:
        if self._conn is not None:
            with self._lock:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> ClipboardEntry:
        # Substitute defaults for damaged rows so one bad row never aborts a listing
        try:
            content_type = ContentType(row["content_type"])
        except ValueError:
            logger.warning("Entry %s has unknown content type %r", row["id"], row["content_type"])
            content_type = ContentType.TEXT
        text_content = row["text_content"]
        if content_type == ContentType.TEXT and text_content is None:
            text_content = ""
        image_data = row["image_data"]
        return ClipboardEntry(
            id=row["id"],
            content_type=content_type,
            text_content=text_content,
            image_bytes=bytes(image_data) if image_data is not None else None,
            content_hash=row["content_hash"] or "",
            created_at=from_timestamp(row["created_at"] or 0),
            expires_at=from_timestamp(row["expires_at"]),
            pinned=bool(row["pinned"]),
            is_sensitive=bool(row["is_sensitive"]),
            tags=parse_tags(row["tags"]),
        )
