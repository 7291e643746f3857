"""SQLite storage shared by the canonical, cache and conflict stores.

Each operation opens its own short-lived connection, so the stores are
safe to use from the worker threads the sync engine runs adapters in.
``transaction()`` takes the database write lock up front
(``BEGIN IMMEDIATE``) which makes read-then-write sequences atomic across
threads and processes.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS diary_entries (
    diary_date TEXT PRIMARY KEY,
    diary_text TEXT NOT NULL,
    last_modified TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS diary_cache (
    diary_datetime TEXT PRIMARY KEY,
    diary_text TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS diary_conflict (
    id TEXT PRIMARY KEY,
    sync_datetime TEXT NOT NULL,
    diary_date TEXT NOT NULL,
    diff_type TEXT NOT NULL CHECK (diff_type IN ('same', 'add', 'rem')),
    diff_text TEXT NOT NULL,
    seq INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_diary_conflict_date
    ON diary_conflict (diary_date);
CREATE INDEX IF NOT EXISTS idx_diary_conflict_session
    ON diary_conflict (sync_datetime, seq);
"""


class DiaryDatabase:
    """Handle to the diary SQLite file.

    Args:
        path: Database file path.  Parent directories are created and the
            schema is initialised on construction.
        timeout: Seconds to wait for another writer to release the lock.
    """

    def __init__(self, path: Path | str, timeout: float = 30.0) -> None:
        self.path = Path(path).expanduser()
        self.timeout = timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Diary database ready at %s", self.path)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield an autocommit connection, closed on exit."""
        conn = sqlite3.connect(
            self.path, timeout=self.timeout, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

        Rolls back and re-raises on any exception.
        """
        with self.connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
