"""SQLite store for feed entries and the processed-resource ledger."""
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from .models import Entry

logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    """Format seconds as H:MM:SS, or M:SS under an hour."""
    h, rem = divmod(max(int(seconds), 0), 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def _to_db_time(value: datetime) -> str:
    # Fixed-width UTC ISO strings sort chronologically as text
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


class EntryStore:
    """SQLite-backed entry store.

    Entries and processed markers live in separate tables keyed by
    (feed_name, resource_id). Deleting an entry never touches its marker.
    All methods are safe to call from concurrent pipeline threads.
    """

    SCHEMA = """
    -- Live feed entries
    CREATE TABLE IF NOT EXISTS entries (
        feed_name TEXT NOT NULL,
        resource_id TEXT NOT NULL,
        title TEXT NOT NULL,
        link TEXT NOT NULL,
        author_name TEXT,
        author_uri TEXT,
        description TEXT,
        thumbnail_url TEXT,
        published TIMESTAMP NOT NULL,
        updated TIMESTAMP NOT NULL,
        file_path TEXT,
        duration_seconds INTEGER NOT NULL DEFAULT 0 CHECK (duration_seconds >= 0),
        PRIMARY KEY (feed_name, resource_id)
    );

    -- Idempotency ledger (outlives entries)
    CREATE TABLE IF NOT EXISTS processed_markers (
        feed_name TEXT NOT NULL,
        resource_id TEXT NOT NULL,
        processed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (feed_name, resource_id)
    );

    CREATE INDEX IF NOT EXISTS idx_entries_published ON entries(feed_name, published);
    """

    COLUMNS = (
        "feed_name, resource_id, title, link, author_name, author_uri, description, "
        "thumbnail_url, published, updated, file_path, duration_seconds"
    )

    def __init__(self, db_path: Path):
        """Open the database, creating tables if needed."""
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self.conn = sqlite3.connect(db_path, check_same_thread=False, timeout=30)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._lock:
            self.conn.executescript(self.SCHEMA)
            self.conn.commit()

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self.conn.close()

    def load(self, feed_name: str, limit: int) -> list[Entry]:
        """Return up to ``limit`` entries of a feed, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            rows = self.conn.execute(
                f"""SELECT {self.COLUMNS} FROM entries
                    WHERE feed_name = ?
                    ORDER BY published DESC, rowid DESC
                    LIMIT ?""",
                (feed_name, limit),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def save(self, entry: Entry) -> bool:
        """Insert entry unless its key already exists.

        Returns:
            True if the entry was created, False if an entry with the same
            (feed_name, resource_id) was already stored. The existing row is
            left untouched.
        """
        with self._lock:
            cursor = self.conn.execute(
                f"""INSERT OR IGNORE INTO entries ({self.COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.feed_name,
                    entry.resource_id,
                    entry.title,
                    entry.link,
                    entry.author_name,
                    entry.author_uri,
                    entry.description,
                    entry.thumbnail_url,
                    _to_db_time(entry.published),
                    _to_db_time(entry.updated),
                    entry.file_path,
                    max(int(entry.duration_seconds), 0),
                ),
            )
            self.conn.commit()
            created = cursor.rowcount == 1
        if not created:
            logger.debug(f"Entry {entry.feed_name}/{entry.resource_id} already exists")
        return created

    def remove(self, entry: Entry) -> None:
        """Delete the entry row. The processed marker stays."""
        with self._lock:
            self.conn.execute(
                "DELETE FROM entries WHERE feed_name = ? AND resource_id = ?",
                (entry.feed_name, entry.resource_id),
            )
            self.conn.commit()

    def set_processed(self, entry: Entry) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT OR IGNORE INTO processed_markers (feed_name, resource_id) VALUES (?, ?)",
                (entry.feed_name, entry.resource_id),
            )
            self.conn.commit()

    def check_processed(self, entry: Entry) -> bool:
        """Check if the resource was ingested before (even if since deleted)."""
        with self._lock:
            row = self.conn.execute(
                "SELECT 1 FROM processed_markers WHERE feed_name = ? AND resource_id = ?",
                (entry.feed_name, entry.resource_id),
            ).fetchone()
        return row is not None

    def reset_processed(self, entry: Entry) -> None:
        """Forget the processed marker so the resource can be ingested again."""
        with self._lock:
            self.conn.execute(
                "DELETE FROM processed_markers WHERE feed_name = ? AND resource_id = ?",
                (entry.feed_name, entry.resource_id),
            )
            self.conn.commit()

    def remove_old(self, feed_name: str, max_items: int) -> list[str]:
        """Evict the oldest entries beyond ``max_items``.

        Store mutation is committed before returning. Deleting the returned
        files is up to the caller.

        Args:
            feed_name: Feed to trim
            max_items: Number of newest entries to keep; <= 0 disables eviction

        Returns:
            File paths of the evicted entries (entries without a file are
            evicted but contribute no path)
        """
        if max_items <= 0:
            return []

        with self._lock:
            count = self.conn.execute(
                "SELECT COUNT(*) FROM entries WHERE feed_name = ?", (feed_name,)
            ).fetchone()[0]
            excess = count - max_items
            if excess <= 0:
                return []

            rows = self.conn.execute(
                """SELECT rowid, resource_id, file_path FROM entries
                   WHERE feed_name = ?
                   ORDER BY published ASC, rowid ASC
                   LIMIT ?""",
                (feed_name, excess),
            ).fetchall()
            self.conn.executemany(
                "DELETE FROM entries WHERE rowid = ?",
                [(row["rowid"],) for row in rows],
            )
            self.conn.commit()

        logger.info(f"Evicted {len(rows)} old entries from {feed_name}")
        return [row["file_path"] for row in rows if row["file_path"]]

    def _row_to_entry(self, row: sqlite3.Row) -> Entry:
        return Entry(
            feed_name=row["feed_name"],
            resource_id=row["resource_id"],
            title=row["title"],
            link=row["link"],
            author_name=row["author_name"] or "",
            author_uri=row["author_uri"] or "",
            description=row["description"] or "",
            thumbnail_url=row["thumbnail_url"] or "",
            published=_from_db_time(row["published"]),
            updated=_from_db_time(row["updated"]),
            file_path=row["file_path"] or "",
            duration_seconds=row["duration_seconds"],
        )
