"""Tests for offline backup validation."""

import datetime as dt

import pytest

from diary_sync.errors import DataIntegrityError
from diary_sync.sync.backup import BackupValidator
from diary_sync.sync.cloud import CloudReplica
from diary_sync.sync.models import SyncAction

D = dt.date(2024, 3, 1)


@pytest.fixture
def backup_dir(tmp_path):
    path = tmp_path / "backup"
    path.mkdir()
    return path


class TestValidateBackup:
    def test_stale_backup_is_removed_and_reuploaded(
        self, backup_dir, entries, object_store
    ):
        entries.upsert(D, "grown since the backup")
        stale = backup_dir / "2024-03-01.txt"
        stale.write_text("grown")
        cloud = CloudReplica(object_store, "bucket", entries)

        results = BackupValidator(backup_dir, entries, cloud).validate_backup()

        assert [(r.action, r.key, r.detail) for r in results] == [
            (SyncAction.BACKUP_REFRESH, "2024-03-01", "5 -> 22")
        ]
        assert not stale.exists()
        assert object_store.uploads == ["2024-03-01.txt"]

    def test_current_backup_is_kept(self, backup_dir, entries):
        entries.upsert(D, "same")
        current = backup_dir / "2024-03-01.txt"
        current.write_text("same")

        assert BackupValidator(backup_dir, entries).validate_backup() == []
        assert current.exists()

    def test_backup_without_entry_raises(self, backup_dir, entries):
        (backup_dir / "2024-03-01.txt").write_text("orphan")
        with pytest.raises(DataIntegrityError, match="no stored entry"):
            BackupValidator(backup_dir, entries).validate_backup()

    def test_ignores_other_files(self, backup_dir, entries):
        (backup_dir / "README").write_text("x")
        (backup_dir / "2023-02-30.txt").write_text("x")
        assert BackupValidator(backup_dir, entries).validate_backup() == []

    def test_missing_directory_is_not_fatal(self, tmp_path, entries):
        validator = BackupValidator(tmp_path / "nope", entries)
        assert validator.validate_backup() == []
