"""Tests for the cache store."""

import datetime as dt

from diary_sync.store.models import CacheItem

T1 = dt.datetime(2024, 3, 1, 9, 0, 0, 123456, tzinfo=dt.timezone.utc)


class TestCacheStore:
    def test_insert_and_list(self, cache):
        item = cache.insert("quick note")
        assert cache.list() == [item]
        assert item.timestamp.tzinfo is not None

    def test_insert_twice_gets_distinct_timestamps(self, cache):
        a = cache.insert("one")
        b = cache.insert("two")
        assert a.timestamp != b.timestamp
        assert [i.text for i in cache.list()] == ["one", "two"]

    def test_add_is_idempotent_per_timestamp(self, cache):
        item = CacheItem(timestamp=T1, text="from peer")
        assert cache.add(item) is True
        assert cache.add(item) is False
        assert cache.list() == [item]

    def test_list_oldest_first(self, cache):
        later = CacheItem(timestamp=T1 + dt.timedelta(hours=1), text="later")
        earlier = CacheItem(timestamp=T1, text="earlier")
        cache.add(later)
        cache.add(earlier)
        assert cache.list() == [earlier, later]

    def test_search(self, cache):
        cache.add(CacheItem(timestamp=T1, text="harbour walk"))
        cache.add(CacheItem(timestamp=T1 + dt.timedelta(seconds=1), text="tea"))
        assert [i.text for i in cache.search("harbour")] == ["harbour walk"]

    def test_timestamps_and_delete(self, cache):
        cache.add(CacheItem(timestamp=T1, text="x"))
        assert cache.timestamps() == {T1}
        assert cache.delete(T1) is True
        assert cache.delete(T1) is False
        assert cache.list() == []


class TestCacheItem:
    def test_wire_line_round_trips(self):
        item = CacheItem(timestamp=T1, text='said "hi"\nthen left')
        assert CacheItem.model_validate_json(item.to_line()) == item

    def test_naive_timestamp_taken_as_utc(self):
        item = CacheItem(timestamp=dt.datetime(2024, 3, 1, 9, 0), text="x")
        assert item.timestamp.tzinfo == dt.timezone.utc
