"""Shared pytest fixtures for diary-sync tests."""

from __future__ import annotations

import datetime as dt
import os

import pytest

from diary_sync.config import Config
from diary_sync.core.locks import KeyedLocks
from diary_sync.store import CacheStore, ConflictLog, DiaryDatabase, EntryStore
from diary_sync.store.models import utcnow
from diary_sync.sync.cloud import ObjectInfo


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a real bucket or ssh peer",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a real bucket or ssh peer"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def db(tmp_path):
    """A fresh diary database in the test's temp directory."""
    return DiaryDatabase(tmp_path / "db" / "diary.db")


@pytest.fixture
def entries(db):
    return EntryStore(db, KeyedLocks())


@pytest.fixture
def cache(db):
    return CacheStore(db)


@pytest.fixture
def conflicts(db, entries):
    return ConflictLog(db, entries)


# ---------------------------------------------------------------------------
# Replica fakes
# ---------------------------------------------------------------------------


class FakeObjectStore:
    """In-memory ObjectStore: key -> (text, last_modified)."""

    def __init__(self):
        self.objects: dict[str, tuple[str, dt.datetime]] = {}
        self.uploads: list[str] = []
        self.list_calls = 0

    def put(self, key: str, text: str, last_modified: dt.datetime) -> None:
        self.objects[key] = (text, last_modified)

    def list_objects(self, bucket):
        self.list_calls += 1
        return [
            ObjectInfo(key=key, size=len(text.encode("utf-8")), last_modified=lm)
            for key, (text, lm) in self.objects.items()
        ]

    def download_text(self, bucket, key):
        return self.objects.get(key)

    def upload_text(self, text, bucket, key):
        self.uploads.append(key)
        self.objects[key] = (text, utcnow())


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def set_mtime():
    """Return a helper that sets a file's mtime to an aware datetime."""

    def _set(path, when: dt.datetime) -> None:
        stamp = when.timestamp()
        os.utime(path, (stamp, stamp))

    return _set


@pytest.fixture
def diary_config(tmp_path):
    """A Config pointing every path into the temp directory, no replicas."""
    return Config(
        database_path=tmp_path / "db" / "diary.db",
        diary_path=tmp_path / "diary",
        diary_bucket="",
        ssh_url=None,
        backup_path=None,
    )
