"""Canonical store: one diary entry per calendar date.

``upsert`` is the only write path used by the replica adapters.  It diffs
the incoming text against the stored text and, when lines would be lost,
records the diff in the conflict log before overwriting.  The read, diff
and write happen under a per-date lock inside one ``BEGIN IMMEDIATE``
transaction, so concurrent upserts of the same date never interleave.
"""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3

from diary_sync.core.locks import KeyedLocks
from diary_sync.differ import diff, has_removals
from diary_sync.store.conflicts import record_session
from diary_sync.store.db import DiaryDatabase
from diary_sync.store.models import (
    Entry,
    format_timestamp,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)


def _row_to_entry(row: sqlite3.Row) -> Entry:
    return Entry(
        diary_date=dt.date.fromisoformat(row["diary_date"]),
        text=row["diary_text"],
        last_modified=parse_timestamp(row["last_modified"]),
    )


class EntryStore:
    """Read and write canonical diary entries.

    Args:
        db: The diary database.
        locks: Per-date lock map.  Share one instance between every
            ``EntryStore`` using the same database in a process.
    """

    def __init__(
        self, db: DiaryDatabase, locks: KeyedLocks | None = None
    ) -> None:
        self._db = db
        self._locks = locks or KeyedLocks()

    def get(self, diary_date: dt.date) -> Entry | None:
        """Return the entry for *diary_date*, or ``None``."""
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM diary_entries WHERE diary_date = ?",
                (diary_date.isoformat(),),
            ).fetchone()
        if row is None:
            return None
        return _row_to_entry(row)

    def search(self, text: str) -> list[Entry]:
        """Entries whose text contains *text*, oldest date first."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM diary_entries "
                "WHERE instr(diary_text, ?) > 0 ORDER BY diary_date",
                (text,),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def list_dates(
        self,
        min_date: dt.date | None = None,
        max_date: dt.date | None = None,
        start: int = 0,
        limit: int | None = None,
    ) -> list[dt.date]:
        """Dates with an entry, newest first, optionally bounded and paged."""
        clauses: list[str] = []
        params: list[object] = []
        if min_date is not None:
            clauses.append("diary_date >= ?")
            params.append(min_date.isoformat())
        if max_date is not None:
            clauses.append("diary_date <= ?")
            params.append(max_date.isoformat())
        query = "SELECT diary_date FROM diary_entries"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY diary_date DESC LIMIT ? OFFSET ?"
        params.extend([-1 if limit is None else limit, start])
        with self._db.connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dt.date.fromisoformat(r["diary_date"]) for r in rows]

    def list_modified(self) -> dict[dt.date, dt.datetime]:
        """Snapshot of every date and its last-modified time."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT diary_date, last_modified FROM diary_entries"
            ).fetchall()
        return {
            dt.date.fromisoformat(r["diary_date"]): parse_timestamp(
                r["last_modified"]
            )
            for r in rows
        }

    def upsert(
        self,
        diary_date: dt.date,
        text: str,
        last_modified: dt.datetime | None = None,
    ) -> dt.datetime | None:
        """Insert or overwrite the entry for *diary_date*.

        The new text always wins.  If the overwrite removes at least one
        existing line, the full diff is recorded as a conflict session
        first.

        Args:
            diary_date: Date to write.
            text: New full text.
            last_modified: Timestamp for a newly inserted entry (defaults
                to now).  Updates always stamp the current time.

        Returns:
            The conflict session timestamp, or ``None`` when nothing was
            recorded.
        """
        with self._locks.hold(diary_date), self._db.transaction() as conn:
            return self._write(conn, diary_date, text, last_modified)

    def append(
        self, diary_date: dt.date, text: str, separator: str = "\n\n"
    ) -> dt.datetime | None:
        """Append *text* to the entry for *diary_date*, creating it if absent.

        A blank existing entry is replaced rather than extended.  The read
        and write share one transaction, so appending never loses lines.
        """
        with self._locks.hold(diary_date), self._db.transaction() as conn:
            row = conn.execute(
                "SELECT diary_text FROM diary_entries WHERE diary_date = ?",
                (diary_date.isoformat(),),
            ).fetchone()
            if row is not None and row["diary_text"].strip():
                text = f"{row['diary_text']}{separator}{text}"
            return self._write(conn, diary_date, text, None)

    def _write(
        self,
        conn: sqlite3.Connection,
        diary_date: dt.date,
        text: str,
        last_modified: dt.datetime | None,
    ) -> dt.datetime | None:
        key = diary_date.isoformat()
        row = conn.execute(
            "SELECT diary_text FROM diary_entries WHERE diary_date = ?",
            (key,),
        ).fetchone()

        if row is None:
            conn.execute(
                "INSERT INTO diary_entries "
                "(diary_date, diary_text, last_modified) "
                "VALUES (?, ?, ?)",
                (key, text, format_timestamp(last_modified or utcnow())),
            )
            logger.debug("Inserted entry %s", key)
            return None

        distance, chunks = diff(row["diary_text"], text)
        session = None
        if distance > 0 and has_removals(chunks):
            session = record_session(conn, diary_date, chunks)

        conn.execute(
            "UPDATE diary_entries "
            "SET diary_text = ?, last_modified = ? WHERE diary_date = ?",
            (text, format_timestamp(utcnow()), key),
        )
        logger.debug("Updated entry %s (distance %d)", key, distance)
        return session

    def delete(self, diary_date: dt.date) -> bool:
        """Delete the entry for *diary_date*.  Returns ``True`` if it existed."""
        with self._locks.hold(diary_date), self._db.connect() as conn:
            cur = conn.execute(
                "DELETE FROM diary_entries WHERE diary_date = ?",
                (diary_date.isoformat(),),
            )
        return cur.rowcount > 0
