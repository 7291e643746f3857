"""Cache store: timestamped quick-capture fragments not yet assigned a date."""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3

from diary_sync.store.db import DiaryDatabase
from diary_sync.store.models import (
    CacheItem,
    format_timestamp,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)


def _row_to_item(row: sqlite3.Row) -> CacheItem:
    return CacheItem(
        timestamp=parse_timestamp(row["diary_datetime"]),
        text=row["diary_text"],
    )


class CacheStore:
    """Append-only store of cache items keyed by creation time."""

    def __init__(self, db: DiaryDatabase) -> None:
        self._db = db

    def insert(self, text: str) -> CacheItem:
        """Store *text* stamped with the current time."""
        timestamp = utcnow()
        with self._db.transaction() as conn:
            while conn.execute(
                "SELECT 1 FROM diary_cache WHERE diary_datetime = ?",
                (format_timestamp(timestamp),),
            ).fetchone():
                timestamp += dt.timedelta(microseconds=1)
            conn.execute(
                "INSERT INTO diary_cache (diary_datetime, diary_text) "
                "VALUES (?, ?)",
                (format_timestamp(timestamp), text),
            )
        logger.debug("Cached text at %s", format_timestamp(timestamp))
        return CacheItem(timestamp=timestamp, text=text)

    def add(self, item: CacheItem) -> bool:
        """Store *item* under its own timestamp.

        Returns:
            ``False`` (and stores nothing) if an item with the same
            timestamp already exists.
        """
        with self._db.connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO diary_cache "
                "(diary_datetime, diary_text) VALUES (?, ?)",
                (format_timestamp(item.timestamp), item.text),
            )
        return cur.rowcount > 0

    def list(self) -> list[CacheItem]:
        """All cache items, oldest first."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM diary_cache ORDER BY diary_datetime"
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def search(self, text: str) -> list[CacheItem]:
        """Cache items containing *text*, oldest first."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM diary_cache WHERE instr(diary_text, ?) > 0 "
                "ORDER BY diary_datetime",
                (text,),
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def timestamps(self) -> set[dt.datetime]:
        """Timestamps of every stored item."""
        return {item.timestamp for item in self.list()}

    def delete(self, timestamp: dt.datetime) -> bool:
        """Remove the item stored at *timestamp*.  Returns ``True`` if found."""
        with self._db.connect() as conn:
            cur = conn.execute(
                "DELETE FROM diary_cache WHERE diary_datetime = ?",
                (format_timestamp(timestamp),),
            )
        return cur.rowcount > 0
