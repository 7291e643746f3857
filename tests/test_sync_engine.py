"""Tests for the sync engine: step order, partial failure and abort semantics."""

from __future__ import annotations

import datetime as dt
import subprocess
from unittest.mock import patch

import pytest

from diary_sync.errors import DataIntegrityError, SyncAbortedError, TransportError
from diary_sync.store.models import CacheItem
from diary_sync.sync.backup import BackupValidator
from diary_sync.sync.cloud import CloudReplica
from diary_sync.sync.engine import SyncEngine
from diary_sync.sync.local import LocalReplica
from diary_sync.sync.models import SyncAction
from diary_sync.sync.peer import PeerReplica, SSHInstance

TODAY = dt.date(2024, 3, 10)
LONG_AGO = dt.datetime(2000, 1, 1, tzinfo=dt.timezone.utc)


class FailingObjectStore:
    """ObjectStore whose listing always fails."""

    def list_objects(self, bucket):
        raise TransportError("bucket unreachable")

    def download_text(self, bucket, key):
        raise AssertionError("not reached")

    def upload_text(self, text, bucket, key):
        raise AssertionError("not reached")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_engine(tmp_path, entries, cache, object_store=None, peer=None):
    """Build an engine over a temp diary directory and optional cloud."""
    diary_dir = tmp_path / "diary"
    diary_dir.mkdir(exist_ok=True)
    local = LocalReplica(diary_dir, entries, today=lambda: TODAY)
    cloud = None
    if object_store is not None:
        cloud = CloudReplica(object_store, "bucket", entries, time_buffer=60.0)
    engine = SyncEngine(entries, cache, local, cloud=cloud, peer=peer)
    return engine, diary_dir


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    monkeypatch.setattr(
        SSHInstance.run_command_stream_stdout.retry, "sleep", lambda s: None
    )


class TestFullPass:
    async def test_empty_pass_completes(self, tmp_path, entries, cache):
        engine, _ = _setup_engine(tmp_path, entries, cache)
        report = await engine.run()
        assert report.completed
        # window files created for today and the three days before
        assert len(report.by_action(SyncAction.LOCAL_CLEANUP)) == 4

    async def test_replicas_converge(self, tmp_path, entries, cache, object_store):
        object_store.put("2024-01-05.txt", "from the bucket", LONG_AGO)
        engine, diary_dir = _setup_engine(tmp_path, entries, cache, object_store)
        (diary_dir / "2024-01-06.txt").write_text("from the folder")
        cache.add(
            CacheItem(
                timestamp=dt.datetime(2024, 1, 7, 12).astimezone(),
                text="quick note",
            )
        )

        report = await engine.run()

        assert entries.get(dt.date(2024, 1, 5)).text == "from the bucket"
        assert entries.get(dt.date(2024, 1, 6)).text == "from the folder"
        assert entries.get(dt.date(2024, 1, 7)).text == "quick note"
        imported = {(r.action, r.key) for r in report.imported}
        assert imported == {
            (SyncAction.CLOUD_IMPORT, "2024-01-05"),
            (SyncAction.LOCAL_IMPORT, "2024-01-06"),
            (SyncAction.CACHE_MERGE, "2024-01-07"),
        }
        # only entries the bucket lacks (and which are not blank) go up
        assert sorted(object_store.uploads) == ["2024-01-06.txt", "2024-01-07.txt"]
        # the four blank window placeholders follow the real entries
        assert (diary_dir / "diary_2024.txt").read_text() == (
            "from the bucket\n\nfrom the folder\n\nquick note" + "\n\n" * 4 + "\n"
        )

    async def test_second_pass_is_quiet(self, tmp_path, entries, cache, object_store):
        object_store.put("2024-01-05.txt", "from the bucket", LONG_AGO)
        engine, _ = _setup_engine(tmp_path, entries, cache, object_store)
        await engine.run()
        object_store.uploads.clear()

        report = await engine.run()

        assert report.imported == []
        assert object_store.uploads == []
        assert report.by_action(SyncAction.ARCHIVE_EXPORT) == []

    async def test_sync_everything_returns_log_lines(self, tmp_path, entries, cache):
        engine, diary_dir = _setup_engine(tmp_path, entries, cache)
        (diary_dir / "2024-01-06.txt").write_text("text")
        lines = await engine.sync_everything()
        assert "local import 2024-01-06" in lines
        assert "archive 2024 5" in lines


class TestPeerStep:
    @patch("diary_sync.sync.peer.subprocess.run")
    async def test_peer_failure_is_recorded_not_fatal(
        self, mock_run, tmp_path, entries, cache
    ):
        mock_run.return_value = subprocess.CompletedProcess(
            args=["ssh"], returncode=255, stdout=b"", stderr=b"unreachable"
        )
        peer = PeerReplica("ssh://me@peer.example", cache)
        engine, _ = _setup_engine(tmp_path, entries, cache, peer=peer)

        report = await engine.run()

        assert report.completed
        [error] = report.errors
        assert error.action is SyncAction.PEER_PULL
        assert "unreachable" in error.error

    @patch("diary_sync.sync.peer.subprocess.run")
    async def test_pulled_items_are_merged_same_pass(
        self, mock_run, tmp_path, entries, cache
    ):
        item = CacheItem(timestamp=dt.datetime(2024, 2, 2, 12).astimezone(), text="remote")
        mock_run.side_effect = [
            subprocess.CompletedProcess(
                args=["ssh"], returncode=0, stdout=item.to_line().encode(), stderr=b""
            ),
            subprocess.CompletedProcess(
                args=["ssh"], returncode=0, stdout=b"", stderr=b""
            ),
        ]
        peer = PeerReplica("ssh://me@peer.example", cache)
        engine, _ = _setup_engine(tmp_path, entries, cache, peer=peer)

        report = await engine.run()

        assert [r.action for r in report.results[:2]] == [
            SyncAction.PEER_PULL,
            SyncAction.CACHE_MERGE,
        ]
        assert entries.get(dt.date(2024, 2, 2)).text == "remote"
        assert cache.list() == []


class TestAbort:
    async def test_failed_import_aborts_with_partial_report(
        self, tmp_path, entries, cache
    ):
        engine, diary_dir = _setup_engine(
            tmp_path, entries, cache, FailingObjectStore()
        )
        (diary_dir / "2024-01-06.txt").write_text("from the folder")
        cache.add(
            CacheItem(timestamp=dt.datetime(2024, 1, 7, 12).astimezone(), text="n")
        )

        with pytest.raises(SyncAbortedError) as exc_info:
            await engine.run()

        err = exc_info.value
        assert err.step == "import"
        assert isinstance(err.__cause__, TransportError)
        assert not err.report.completed
        assert [r.action for r in err.report.results] == [SyncAction.CACHE_MERGE]
        # the concurrent local import settled and its write is kept
        assert entries.get(dt.date(2024, 1, 6)).text == "from the folder"
        # later steps never ran
        assert not (diary_dir / f"{TODAY.isoformat()}.txt").exists()

    async def test_backup_integrity_error_aborts(self, tmp_path, entries, cache):
        backup_dir = tmp_path / "backup"
        backup_dir.mkdir()
        (backup_dir / "1999-01-01.txt").write_text("orphan")
        engine, _ = _setup_engine(tmp_path, entries, cache)
        engine.backup = BackupValidator(backup_dir, entries)

        with pytest.raises(SyncAbortedError) as exc_info:
            await engine.run()

        assert exc_info.value.step == "backup validation"
        assert isinstance(exc_info.value.__cause__, DataIntegrityError)
        assert exc_info.value.report.by_action(SyncAction.ARCHIVE_EXPORT)
