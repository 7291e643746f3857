"""Local replica: one text file per date in a directory, plus yearly archives.

The directory is meant to be shared through a file-sync client and edited
by hand, so the adapter keeps an editable file for today and the three
previous days, and removes older files once their content is safely in
the canonical store.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path

from diary_sync.errors import ParseError
from diary_sync.file_handler import (
    archive_filename,
    entry_filename,
    file_mtime,
    list_entry_files,
    parse_entry_filename,
    read_file_with_encoding,
    write_file,
)
from diary_sync.store.entries import EntryStore

from .models import SyncAction, SyncResult

logger = logging.getLogger(__name__)

CLEANUP_WINDOW_DAYS = 4


class LocalReplica:
    """Mirror the canonical store to and from a directory of text files.

    Args:
        diary_path: Directory holding ``YYYY-MM-DD.txt`` files.
        entries: Canonical store.
        tolerance: Seconds a file's mtime must exceed the stored
            last-modified time by before the file is imported.
        today: Returns the current local date (injectable for tests).
    """

    def __init__(
        self,
        diary_path: Path,
        entries: EntryStore,
        tolerance: float = 1.0,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.diary_path = Path(diary_path).expanduser()
        self._entries = entries
        self._tolerance = tolerance
        self._today = today

    def _scan(self) -> dict[dt.date, Path]:
        """Map each well-formed dated file to its date, skipping bad names."""
        files: dict[dt.date, Path] = {}
        if not self.diary_path.is_dir():
            logger.warning("Diary directory %s does not exist", self.diary_path)
            return files
        for path in list_entry_files(self.diary_path):
            try:
                files[parse_entry_filename(path.name)] = path
            except ParseError as exc:
                logger.warning("Skipping %s: %s", path, exc)
        return files

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_from_local(self) -> list[SyncResult]:
        """Upsert every file newer than its entry, or for an unknown date.

        Empty and whitespace-only files are never imported.
        """
        existing = self._entries.list_modified()
        results: list[SyncResult] = []

        for diary_date, path in sorted(self._scan().items()):
            modified = file_mtime(path)
            current = existing.get(diary_date)
            if current is not None and (
                (modified - current).total_seconds() <= self._tolerance
            ):
                continue

            text, encoding = read_file_with_encoding(path)
            if not text.strip():
                continue
            if encoding != "utf-8":
                logger.info("Read %s as %s", path, encoding)

            session = self._entries.upsert(
                diary_date, text, last_modified=modified
            )
            logger.debug(
                "import local date %s lines %d", diary_date, text.count("\n")
            )
            results.append(
                SyncResult(
                    action=SyncAction.LOCAL_IMPORT,
                    key=diary_date.isoformat(),
                    conflict_session=session,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def cleanup_local(self) -> list[SyncResult]:
        """Keep editable files for the recent window and prune older ones.

        For each of today and the previous three days: a missing file is
        created from the entry (and an empty placeholder entry created if
        the date is unknown); a file older and shorter than its entry is
        rewritten.  Files before the window are deleted when blank or
        identical to the entry; anything else is kept.
        """
        today = self._today()
        window = [
            today - dt.timedelta(days=i) for i in range(CLEANUP_WINDOW_DAYS)
        ]
        files = self._scan()
        results: list[SyncResult] = []

        for diary_date, path in sorted(files.items()):
            if diary_date < window[-1]:
                result = self._prune(diary_date, path)
                if result is not None:
                    results.append(result)

        for diary_date in window:
            result = self._refresh(diary_date, files.get(diary_date))
            if result is not None:
                results.append(result)
        return results

    def _prune(self, diary_date: dt.date, path: Path) -> SyncResult | None:
        text, _ = read_file_with_encoding(path)
        entry = self._entries.get(diary_date)
        if text.strip() and (entry is None or entry.text != text):
            logger.info("Keeping %s: content differs from stored entry", path)
            return None
        path.unlink()
        logger.debug("Removed %s", path)
        return SyncResult(
            action=SyncAction.LOCAL_CLEANUP,
            key=diary_date.isoformat(),
            detail="removed",
        )

    def _refresh(
        self, diary_date: dt.date, path: Path | None
    ) -> SyncResult | None:
        entry = self._entries.get(diary_date)
        if entry is None:
            self._entries.upsert(diary_date, "")
            entry = self._entries.get(diary_date)

        if path is None:
            write_file(self.diary_path / entry_filename(diary_date), entry.text)
            return SyncResult(
                action=SyncAction.LOCAL_CLEANUP,
                key=diary_date.isoformat(),
                detail="created",
            )

        if file_mtime(path) < entry.last_modified and (
            entry.size > path.stat().st_size
        ):
            write_file(path, entry.text)
            return SyncResult(
                action=SyncAction.LOCAL_CLEANUP,
                key=diary_date.isoformat(),
                detail="rewritten",
            )
        return None

    # ------------------------------------------------------------------
    # Yearly archive
    # ------------------------------------------------------------------

    def export_year_to_local(self) -> list[SyncResult]:
        """Regenerate ``diary_<year>.txt`` for every year with new entries.

        A year is skipped when its archive is at least as recent as the
        newest entry of that year.  Entries are written in date order,
        separated by blank lines.
        """
        modified = self._entries.list_modified()
        years: dict[int, list[dt.date]] = defaultdict(list)
        for diary_date in sorted(modified):
            years[diary_date.year].append(diary_date)

        results: list[SyncResult] = []
        for year, dates in sorted(years.items()):
            path = self.diary_path / archive_filename(year)
            newest = max(modified[d] for d in dates)
            if path.exists() and file_mtime(path) >= newest:
                continue

            texts = []
            for diary_date in dates:
                entry = self._entries.get(diary_date)
                if entry is not None:
                    texts.append(entry.text)
            write_file(path, "\n\n".join(texts) + "\n")
            logger.debug("Wrote %s with %d entries", path, len(texts))
            results.append(
                SyncResult(
                    action=SyncAction.ARCHIVE_EXPORT,
                    key=str(year),
                    detail=str(len(texts)),
                )
            )
        return results
