"""Offline backup validation.

An offline backup directory holds ``YYYY-MM-DD.txt`` copies fetched from
the bucket out-of-band.  A backup shorter than the live entry is stale:
it is deleted and the entry re-uploaded so the next offline fetch picks
up the current text.
"""

from __future__ import annotations

import logging
from pathlib import Path

from diary_sync.errors import DataIntegrityError, ParseError
from diary_sync.file_handler import list_entry_files, parse_entry_filename
from diary_sync.store.entries import EntryStore

from .cloud import CloudReplica
from .models import SyncAction, SyncResult

logger = logging.getLogger(__name__)


class BackupValidator:
    """Compare backup file sizes with the canonical store.

    Args:
        backup_path: Backup directory.
        entries: Canonical store.
        cloud: Cloud replica used to re-upload grown entries, if any.
    """

    def __init__(
        self,
        backup_path: Path,
        entries: EntryStore,
        cloud: CloudReplica | None = None,
    ) -> None:
        self.backup_path = Path(backup_path).expanduser()
        self._entries = entries
        self._cloud = cloud

    def validate_backup(self) -> list[SyncResult]:
        """Delete stale backups and re-upload the entries they lag behind.

        Raises:
            DataIntegrityError: If a backup exists for a date with no entry.
        """
        if not self.backup_path.is_dir():
            logger.warning("Backup directory %s does not exist", self.backup_path)
            return []

        results: list[SyncResult] = []
        for path in list_entry_files(self.backup_path):
            try:
                diary_date = parse_entry_filename(path.name)
            except ParseError as exc:
                logger.warning("Skipping backup %s: %s", path, exc)
                continue

            entry = self._entries.get(diary_date)
            if entry is None:
                raise DataIntegrityError(
                    f"Backup {path.name} has no stored entry for {diary_date}"
                )
            backup_size = path.stat().st_size
            if entry.size <= backup_size:
                continue

            path.unlink()
            logger.info(
                "Backup %s is stale (%d < %d bytes), removed",
                path.name,
                backup_size,
                entry.size,
            )
            if self._cloud is not None:
                self._cloud.upload_entry(diary_date)
            results.append(
                SyncResult(
                    action=SyncAction.BACKUP_REFRESH,
                    key=diary_date.isoformat(),
                    detail=f"{backup_size} -> {entry.size}",
                )
            )
        return results
