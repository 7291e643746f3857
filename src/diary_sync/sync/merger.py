"""Fold cache items into the canonical entries of their local calendar date.

Items of one date are concatenated in timestamp order and appended to
the existing entry, separated by a blank line, so merging only ever grows
an entry.  Each item is deleted from the cache once its date is written.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict

from diary_sync.store.cache import CacheStore
from diary_sync.store.entries import EntryStore
from diary_sync.store.models import CacheItem

from .models import SyncAction, SyncResult

logger = logging.getLogger(__name__)

SEPARATOR = "\n\n"


def merge_cache_to_entries(
    cache: CacheStore, entries: EntryStore
) -> list[SyncResult]:
    """Move every cache item into its date's entry.

    Returns:
        One result per date written, oldest first.
    """
    by_date: dict[dt.date, list[CacheItem]] = defaultdict(list)
    for item in cache.list():
        by_date[item.local_date()].append(item)

    results: list[SyncResult] = []
    for diary_date in sorted(by_date):
        items = sorted(by_date[diary_date], key=lambda i: i.timestamp)
        text = SEPARATOR.join(item.text for item in items)
        session = entries.append(diary_date, text, separator=SEPARATOR)
        for item in items:
            cache.delete(item.timestamp)
        logger.debug("Merged %d cache items into %s", len(items), diary_date)
        results.append(
            SyncResult(
                action=SyncAction.CACHE_MERGE,
                key=diary_date.isoformat(),
                conflict_session=session,
            )
        )
    return results
