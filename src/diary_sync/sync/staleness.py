"""Staleness heuristic for deciding which copy of a date is newer.

Remote modification times are not trustworthy to the second, so a plain
timestamp comparison is only used when the two copies are further apart
than a tolerance buffer.  Inside the buffer the larger copy is assumed to
be newer, on the premise that diary edits mostly append text.

This is an approximation, not a correctness guarantee: a truncation made
within the buffer looks stale, and an edit that keeps the byte length the
same is never detected.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum


class Freshness(str, Enum):
    """Outcome of comparing a local copy with a replica copy."""

    IN_SYNC = "in_sync"
    LOCAL_NEWER = "local_newer"
    REMOTE_NEWER = "remote_newer"


def compare_copies(
    local_modified: dt.datetime,
    local_size: int,
    remote_modified: dt.datetime,
    remote_size: int,
    buffer_seconds: float,
) -> Freshness:
    """Decide which of two copies of the same date is authoritative.

    Args:
        local_modified: Last-modified time of the canonical entry.
        local_size: Canonical text length in bytes.
        remote_modified: Last-modified time reported by the replica.
        remote_size: Replica copy length in bytes.
        buffer_seconds: Tolerance within which timestamps are ignored.

    Returns:
        ``IN_SYNC`` when the sizes match, otherwise the side judged newer.
    """
    if local_size == remote_size:
        return Freshness.IN_SYNC

    delta = (remote_modified - local_modified).total_seconds()
    if abs(delta) <= buffer_seconds:
        if remote_size > local_size:
            return Freshness.REMOTE_NEWER
        return Freshness.LOCAL_NEWER

    if delta > 0:
        return Freshness.REMOTE_NEWER
    return Freshness.LOCAL_NEWER
