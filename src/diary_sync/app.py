"""Application facade: wires configuration, stores and replicas together.

``DiaryApp`` is what the command line (and any other front end) talks to.
It owns one database handle and one set of per-date locks, and exposes the
capture, search and sync operations.
"""

from __future__ import annotations

import datetime as dt
import logging
import re

from .config import Config
from .core.locks import KeyedLocks
from .store import CacheStore, ConflictLog, DiaryDatabase, EntryStore
from .store.models import CacheItem, Entry, format_timestamp
from .sync import (
    BackupValidator,
    CloudReplica,
    LocalReplica,
    ObjectStore,
    PeerReplica,
    S3ObjectStore,
    SyncEngine,
    SyncReport,
)

logger = logging.getLogger(__name__)

_YMD = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_YM = re.compile(r"(\d{4})-(\d{2})")
_Y = re.compile(r"(\d{4})")


class DiaryApp:
    """Diary stores plus the replicas named in *config*.

    Args:
        config: Resolved configuration.
        object_store: Object store client for the cloud replica (defaults
            to boto3 S3).  Ignored when no bucket is configured.
    """

    def __init__(
        self, config: Config, object_store: ObjectStore | None = None
    ) -> None:
        self.config = config
        self.db = DiaryDatabase(config.database_path)
        self.locks = KeyedLocks()
        self.entries = EntryStore(self.db, self.locks)
        self.cache = CacheStore(self.db)
        self.conflicts = ConflictLog(self.db, self.entries)

        self.local = LocalReplica(
            config.diary_path, self.entries, tolerance=config.local_tolerance
        )
        self.cloud: CloudReplica | None = None
        if config.diary_bucket:
            self.cloud = CloudReplica(
                object_store or S3ObjectStore(region_name=config.aws_region_name),
                config.diary_bucket,
                self.entries,
                time_buffer=config.time_buffer,
            )
        self.peer: PeerReplica | None = None
        if config.ssh_url:
            self.peer = PeerReplica(
                config.ssh_url,
                self.cache,
                serialize_command=config.peer_serialize_command,
                clear_command=config.peer_clear_command,
            )
        self.backup: BackupValidator | None = None
        if config.backup_path is not None:
            self.backup = BackupValidator(
                config.backup_path, self.entries, self.cloud
            )

        self.engine = SyncEngine(
            self.entries,
            self.cache,
            self.local,
            cloud=self.cloud,
            peer=self.peer,
            backup=self.backup,
        )

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def cache_text(self, text: str) -> CacheItem:
        """Quick-capture *text* into the cache, stamped with the current time."""
        return self.cache.insert(text)

    def replace_text(
        self, diary_date: dt.date, text: str
    ) -> tuple[Entry | None, dt.datetime | None]:
        """Overwrite the entry for *diary_date*.

        Returns:
            ``(entry, session)`` where *session* is the conflict session
            recorded by the overwrite, or ``None``.
        """
        session = self.entries.upsert(diary_date, text)
        return self.entries.get(diary_date), session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_dates(
        self,
        min_date: dt.date | None = None,
        max_date: dt.date | None = None,
        start: int | None = None,
        limit: int | None = None,
    ) -> list[dt.date]:
        """Dates with an entry, newest first."""
        return self.entries.list_dates(
            min_date=min_date, max_date=max_date, start=start or 0, limit=limit
        )

    def _matching_dates(self, text: str) -> list[dt.date]:
        dates: set[dt.date] = set()
        if text.strip().lower() == "today":
            dates.add(dt.date.today())

        known = self.entries.list_modified()
        if _YMD.search(text):
            wanted = {m.groups() for m in _YMD.finditer(text)}
            dates.update(
                d for d in known
                if (f"{d.year:04}", f"{d.month:02}", f"{d.day:02}") in wanted
            )
        elif _YM.search(text):
            wanted = {m.groups() for m in _YM.finditer(text)}
            dates.update(
                d for d in known if (f"{d.year:04}", f"{d.month:02}") in wanted
            )
        elif _Y.search(text):
            wanted = {m.group(1) for m in _Y.finditer(text)}
            dates.update(d for d in known if f"{d.year:04}" in wanted)
        return sorted(dates)

    def search_text(self, text: str) -> list[str]:
        """Search entries and cache items.

        ``today``, ``YYYY-MM-DD``, ``YYYY-MM`` and ``YYYY`` select whole
        dates, each followed by that date's cache items.  Anything else is
        a substring search over entries, then cache items.

        Returns:
            Blocks of ``"<date or timestamp>\\n<text>"``.
        """
        dates = self._matching_dates(text)
        logger.debug("search dates %d", len(dates))

        if dates:
            cache_items = self.cache.list()
            results: list[str] = []
            for diary_date in dates:
                entry = self.entries.get(diary_date)
                if entry is not None:
                    results.append(f"{diary_date.isoformat()}\n{entry.text}")
                results.extend(
                    f"{format_timestamp(item.timestamp)}\n{item.text}"
                    for item in cache_items
                    if item.local_date() == diary_date
                )
            return results

        results = [
            f"{entry.diary_date.isoformat()}\n{entry.text}"
            for entry in self.entries.search(text)
        ]
        results.extend(
            f"{format_timestamp(item.timestamp)}\n{item.text}"
            for item in self.cache.search(text)
        )
        return results

    # ------------------------------------------------------------------
    # Peer protocol (producer side)
    # ------------------------------------------------------------------

    def serialize_cache(self) -> list[str]:
        """One JSON line per cache item, oldest first."""
        return [item.to_line() for item in self.cache.list()]

    def clear_cache(self) -> list[str]:
        """Delete every cache item and return the serialised lines removed."""
        cleared: list[str] = []
        for item in self.cache.list():
            if self.cache.delete(item.timestamp):
                cleared.append(item.to_line())
        logger.info("Cleared %d cache items", len(cleared))
        return cleared

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def run_sync(self) -> SyncReport:
        """Run one full sync pass."""
        return await self.engine.run()

    async def sync_everything(self) -> list[str]:
        """Run one full sync pass and return its log lines."""
        return await self.engine.sync_everything()
