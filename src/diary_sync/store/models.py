"""Pydantic models for the canonical, cache and conflict tables.

- ``Entry``: one diary text per calendar date.
- ``CacheItem``: an undated fragment awaiting merge into an ``Entry``.
- ``ConflictChunk``: one tagged line of the diff recorded when an update
  overwrote divergent text.
- ``DiffType``: ``same`` / ``add`` / ``rem`` line tags (from ``differ``).

All models are frozen.  Timestamps are always timezone-aware UTC and are
stored as fixed-width strings (``format_timestamp``) so that lexical order
in SQLite matches chronological order.
"""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, field_validator

from diary_sync.differ import DiffType

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> dt.datetime:
    """Current time as an aware UTC datetime."""
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Coerce *value* to aware UTC (naive values are taken to be UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def format_timestamp(value: dt.datetime) -> str:
    """Render *value* as ``YYYY-MM-DDTHH:MM:SS.ffffffZ``."""
    return as_utc(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> dt.datetime:
    """Parse a stored or RFC 3339 timestamp into aware UTC.

    Raises:
        ValueError: If *text* is not a valid timestamp.
    """
    value = text.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_utc(dt.datetime.fromisoformat(value))


class Entry(BaseModel):
    """Canonical diary text for one date.

    Attributes:
        diary_date: Calendar date (unique).
        text: Full diary text for the date.
        last_modified: When the text was last written (UTC).
    """

    diary_date: dt.date
    text: str
    last_modified: dt.datetime

    model_config = {"frozen": True}

    @field_validator("last_modified")
    @classmethod
    def _utc(cls, value: dt.datetime) -> dt.datetime:
        return as_utc(value)

    @property
    def size(self) -> int:
        """Length of the text in UTF-8 bytes."""
        return len(self.text.encode("utf-8"))


class CacheItem(BaseModel):
    """A quick-capture fragment keyed by its creation time.

    Serialises to the peer wire format ``{"timestamp": ..., "text": ...}``.
    """

    timestamp: dt.datetime
    text: str

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: dt.datetime) -> dt.datetime:
        return as_utc(value)

    def local_date(self) -> dt.date:
        """Calendar date the item falls on in the local timezone."""
        return self.timestamp.astimezone().date()

    def to_line(self) -> str:
        """Serialise as one JSON line for the peer protocol."""
        return self.model_dump_json()


class ConflictChunk(BaseModel):
    """One line of the diff recorded for a conflicting overwrite.

    Attributes:
        id: Chunk identity.
        session: Sync session timestamp grouping the chunks of one overwrite.
        diary_date: Date whose entry was overwritten.
        diff_type: ``same``, ``add`` or ``rem``.
        diff_text: The line itself.
    """

    id: str
    session: dt.datetime
    diary_date: dt.date
    diff_type: DiffType
    diff_text: str

    model_config = {"frozen": True}

    @field_validator("session")
    @classmethod
    def _utc(cls, value: dt.datetime) -> dt.datetime:
        return as_utc(value)

    def to_export(self) -> dict[str, str]:
        """Return the export form ``{session, date, diff_type, diff_text}``."""
        return {
            "session": format_timestamp(self.session),
            "date": self.diary_date.isoformat(),
            "diff_type": self.diff_type.value,
            "diff_text": self.diff_text,
        }
