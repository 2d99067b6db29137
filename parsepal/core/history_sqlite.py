"""
SQLite upload history for ParsePal Relay.
Keeps the most recent N finished uploads, newest first.
Thread-safe via check_same_thread=False + explicit locking.
"""

import sqlite3
import logging
import threading
from pathlib import Path

from parsepal.core.constants import HISTORY_DB_PATH, DEFAULT_HISTORY_LIMIT
from parsepal.core.models import HistoryEntry

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS upload_history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    encounter_name TEXT NOT NULL,
    kind TEXT NOT NULL,
    success INTEGER NOT NULL,
    duration INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    status TEXT NOT NULL,
    keystone_level INTEGER,
    analysis_url TEXT,
    error TEXT
);
"""

_COLUMNS = ("id", "encounter_name", "kind", "success", "duration", "timestamp",
            "status", "keystone_level", "analysis_url", "error")


class HistoryStore:
    """Bounded history of finished uploads."""

    def __init__(self, db_path: Path | None = None, limit: int = DEFAULT_HISTORY_LIMIT):
        self.db_path = db_path or HISTORY_DB_PATH
        self.limit = limit
        self._lock = threading.Lock()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(_CREATE_TABLES)
            cur.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (_SCHEMA_VERSION,),
            )
            self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> HistoryEntry:
        data = {k: row[k] for k in _COLUMNS}
        data['success'] = bool(data['success'])
        return HistoryEntry(**data)

    def add(self, entry: HistoryEntry):
        """Insert (or replace) an entry, then trim to the newest `limit` rows."""
        with self._lock:
            self.conn.execute("DELETE FROM upload_history WHERE id = ?", (entry.id,))
            self.conn.execute(
                f"INSERT INTO upload_history ({', '.join(_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _COLUMNS)})",
                (entry.id, entry.encounter_name, entry.kind, int(entry.success),
                 entry.duration, entry.timestamp, entry.status, entry.keystone_level,
                 entry.analysis_url, entry.error),
            )
            self.conn.execute(
                """DELETE FROM upload_history WHERE seq NOT IN
                   (SELECT seq FROM upload_history ORDER BY seq DESC LIMIT ?)""",
                (self.limit,),
            )
            self.conn.commit()

    def get_history(self) -> list[HistoryEntry]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM upload_history ORDER BY seq DESC"
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def clear(self):
        with self._lock:
            self.conn.execute("DELETE FROM upload_history")
            self.conn.commit()
        logger.info("Upload history cleared")
