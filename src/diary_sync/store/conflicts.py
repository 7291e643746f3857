"""Conflict log: line diffs recorded when an upsert overwrote divergent text.

Chunks produced by one overwrite share a *sync session* timestamp.  A
session can be reviewed line by line, flipped between ``add`` and ``rem``,
discarded, or committed back into the canonical entry.
"""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3
import uuid
from typing import TYPE_CHECKING

from diary_sync.differ import reconstruct
from diary_sync.errors import ConflictNotFoundError
from diary_sync.store.db import DiaryDatabase
from diary_sync.store.models import (
    ConflictChunk,
    DiffType,
    format_timestamp,
    parse_timestamp,
    utcnow,
)

if TYPE_CHECKING:
    from diary_sync.store.entries import EntryStore
    from diary_sync.differ import DiffChunks

logger = logging.getLogger(__name__)

_FLIPPABLE = {DiffType.ADD, DiffType.REM}


def record_session(
    conn: sqlite3.Connection, diary_date: dt.date, chunks: DiffChunks
) -> dt.datetime:
    """Insert *chunks* under a fresh session timestamp.

    Must be called inside the transaction that overwrites the entry, so
    the conflict record and the update land together.

    Returns:
        The new session timestamp (unique across the log).
    """
    session = utcnow()
    while conn.execute(
        "SELECT 1 FROM diary_conflict WHERE sync_datetime = ? LIMIT 1",
        (format_timestamp(session),),
    ).fetchone():
        session += dt.timedelta(microseconds=1)

    key = format_timestamp(session)
    conn.executemany(
        "INSERT INTO diary_conflict "
        "(id, sync_datetime, diary_date, diff_type, diff_text, seq) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        [
            (
                uuid.uuid4().hex,
                key,
                diary_date.isoformat(),
                kind.value,
                line,
                seq,
            )
            for seq, (kind, line) in enumerate(chunks)
        ],
    )
    removed = sum(1 for kind, _ in chunks if kind is DiffType.REM)
    logger.info(
        "Recorded conflict for %s: session %s, %d removed lines",
        diary_date,
        key,
        removed,
    )
    return session


def _row_to_chunk(row: sqlite3.Row) -> ConflictChunk:
    return ConflictChunk(
        id=row["id"],
        session=parse_timestamp(row["sync_datetime"]),
        diary_date=dt.date.fromisoformat(row["diary_date"]),
        diff_type=DiffType(row["diff_type"]),
        diff_text=row["diff_text"],
    )


class ConflictLog:
    """Query and resolve recorded conflict sessions.

    Args:
        db: The diary database.
        entries: Canonical store, used by ``commit``.
    """

    def __init__(self, db: DiaryDatabase, entries: EntryStore) -> None:
        self._db = db
        self._entries = entries

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_dates(self) -> list[dt.date]:
        """Dates with at least one recorded session, oldest first."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT diary_date FROM diary_conflict "
                "ORDER BY diary_date"
            ).fetchall()
        return [dt.date.fromisoformat(r["diary_date"]) for r in rows]

    def list_sessions(self, diary_date: dt.date) -> list[dt.datetime]:
        """Session timestamps recorded for *diary_date*, oldest first."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT sync_datetime FROM diary_conflict "
                "WHERE diary_date = ? ORDER BY sync_datetime",
                (diary_date.isoformat(),),
            ).fetchall()
        return [parse_timestamp(r["sync_datetime"]) for r in rows]

    def list_chunks(self, session: dt.datetime) -> list[ConflictChunk]:
        """Chunks of *session* in diff order."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM diary_conflict WHERE sync_datetime = ? "
                "ORDER BY seq",
                (format_timestamp(session),),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def first_conflict(self) -> dt.datetime | None:
        """Earliest session of the earliest conflicted date, if any."""
        dates = self.list_dates()
        if not dates:
            return None
        sessions = self.list_sessions(dates[0])
        return sessions[0] if sessions else None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def update_chunk_type(self, chunk_id: str, new_type: DiffType) -> None:
        """Reclassify a chunk between ``add`` and ``rem``.

        Raises:
            ConflictNotFoundError: If the chunk does not exist.
            ValueError: If the change is not ``add`` <-> ``rem``.
        """
        new_type = DiffType(new_type)
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT diff_type FROM diary_conflict WHERE id = ?",
                (chunk_id,),
            ).fetchone()
            if row is None:
                raise ConflictNotFoundError(f"No conflict chunk {chunk_id}")
            current = DiffType(row["diff_type"])
            if current not in _FLIPPABLE or new_type not in _FLIPPABLE:
                raise ValueError(
                    f"Cannot change chunk {chunk_id} from "
                    f"'{current.value}' to '{new_type.value}': only "
                    "'add' and 'rem' can be swapped"
                )
            conn.execute(
                "UPDATE diary_conflict SET diff_type = ? WHERE id = ?",
                (new_type.value, chunk_id),
            )

    def delete_chunk(self, chunk_id: str) -> bool:
        """Remove a single chunk.  Returns ``True`` if it existed."""
        with self._db.connect() as conn:
            cur = conn.execute(
                "DELETE FROM diary_conflict WHERE id = ?", (chunk_id,)
            )
        return cur.rowcount > 0

    def delete_session(self, session: dt.datetime) -> int:
        """Remove every chunk of *session*.  Returns the number removed."""
        with self._db.connect() as conn:
            cur = conn.execute(
                "DELETE FROM diary_conflict WHERE sync_datetime = ?",
                (format_timestamp(session),),
            )
        return cur.rowcount

    def delete_by_date(self, diary_date: dt.date) -> int:
        """Discard all sessions recorded for *diary_date*."""
        with self._db.connect() as conn:
            cur = conn.execute(
                "DELETE FROM diary_conflict WHERE diary_date = ?",
                (diary_date.isoformat(),),
            )
        logger.info(
            "Discarded %d conflict chunks for %s", cur.rowcount, diary_date
        )
        return cur.rowcount

    def commit(self, session: dt.datetime) -> dt.datetime | None:
        """Fold a session back into its entry and delete the session.

        The ``same`` and ``add`` chunks, in order, become the entry text.
        The upsert may itself record a new session if the entry changed
        since *session* was recorded.

        Returns:
            The new session created by the upsert, or ``None``.

        Raises:
            ConflictNotFoundError: If *session* has no chunks.
        """
        chunks = self.list_chunks(session)
        if not chunks:
            raise ConflictNotFoundError(
                f"No conflict session {format_timestamp(session)}"
            )
        diary_date = chunks[0].diary_date
        text = reconstruct([(c.diff_type, c.diff_text) for c in chunks])

        new_session = self._entries.upsert(diary_date, text)
        self.delete_session(session)
        logger.info(
            "Committed conflict session %s into %s",
            format_timestamp(session),
            diary_date,
        )
        return new_session
