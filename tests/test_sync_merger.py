"""Tests for merging cache items into canonical entries."""

import datetime as dt

from diary_sync.store.models import CacheItem
from diary_sync.sync.merger import merge_cache_to_entries
from diary_sync.sync.models import SyncAction


def _local(year, month, day, hour, minute=0):
    """Aware datetime for a wall-clock time in the local timezone."""
    return dt.datetime(year, month, day, hour, minute).astimezone()


class TestMergeCacheToEntries:
    def test_three_items_merge_in_timestamp_order(self, cache, entries):
        stamps = [_local(2024, 3, 1, 9), _local(2024, 3, 1, 12), _local(2024, 3, 1, 18)]
        # added out of order
        for stamp, text in zip(reversed(stamps), ["evening", "noon", "morning"]):
            cache.add(CacheItem(timestamp=stamp, text=text))

        results = merge_cache_to_entries(cache, entries)

        assert [(r.action, r.key) for r in results] == [
            (SyncAction.CACHE_MERGE, "2024-03-01")
        ]
        assert entries.get(dt.date(2024, 3, 1)).text == "morning\n\nnoon\n\nevening"
        assert cache.list() == []

    def test_appends_to_existing_entry_without_conflict(self, cache, entries, conflicts):
        d = dt.date(2024, 3, 1)
        entries.upsert(d, "written earlier")
        cache.add(CacheItem(timestamp=_local(2024, 3, 1, 20), text="late note"))

        [result] = merge_cache_to_entries(cache, entries)

        assert result.conflict_session is None
        assert entries.get(d).text == "written earlier\n\nlate note"
        assert conflicts.list_dates() == []

    def test_groups_by_local_date(self, cache, entries):
        cache.add(CacheItem(timestamp=_local(2024, 3, 2, 8), text="second day"))
        cache.add(CacheItem(timestamp=_local(2024, 3, 1, 8), text="first day"))

        results = merge_cache_to_entries(cache, entries)

        assert [r.key for r in results] == ["2024-03-01", "2024-03-02"]
        assert entries.get(dt.date(2024, 3, 1)).text == "first day"
        assert entries.get(dt.date(2024, 3, 2)).text == "second day"

    def test_empty_cache(self, cache, entries):
        assert merge_cache_to_entries(cache, entries) == []
