"""Pydantic models describing the outcome of a sync pass.

- ``SyncAction``: which step of the pass produced a result.
- ``SyncResult``: one thing a step did (an imported date, a pulled cache
  item, an exported archive year).
- ``SyncReport``: every result of one pass, in step order.

All models are frozen (immutable).
"""

from __future__ import annotations

import datetime as dt
from enum import Enum

from pydantic import BaseModel

from diary_sync.store.models import format_timestamp


class SyncAction(str, Enum):
    """Steps of a sync pass, in the order they run."""

    PEER_PULL = "peer_pull"
    CACHE_MERGE = "cache_merge"
    LOCAL_IMPORT = "local_import"
    CLOUD_IMPORT = "cloud_import"
    LOCAL_CLEANUP = "local_cleanup"
    CLOUD_EXPORT = "cloud_export"
    ARCHIVE_EXPORT = "archive_export"
    BACKUP_REFRESH = "backup_refresh"


_LABELS = {
    SyncAction.PEER_PULL: "ssh cache",
    SyncAction.CACHE_MERGE: "update",
    SyncAction.LOCAL_IMPORT: "local import",
    SyncAction.CLOUD_IMPORT: "cloud import",
    SyncAction.LOCAL_CLEANUP: "local cleanup",
    SyncAction.CLOUD_EXPORT: "cloud export",
    SyncAction.ARCHIVE_EXPORT: "archive",
    SyncAction.BACKUP_REFRESH: "backup",
}


class SyncResult(BaseModel):
    """Something one step of the pass did.

    Attributes:
        action: Step that produced the result.
        key: What was touched: an ISO date, a cache timestamp or a year.
        success: ``False`` for a recorded non-fatal failure.
        detail: Short human-readable note (``"created file"``, a count).
        conflict_session: Session recorded if the write overwrote lines.
        error: Error message for a failed result.
    """

    action: SyncAction
    key: str
    success: bool = True
    detail: str | None = None
    conflict_session: dt.datetime | None = None
    error: str | None = None

    model_config = {"frozen": True}

    def log_line(self) -> str:
        """One-line description, e.g. ``cloud import 2024-03-01``."""
        line = f"{_LABELS[self.action]} {self.key}"
        if self.detail:
            line += f" {self.detail}"
        if self.conflict_session is not None:
            line += f" conflict {format_timestamp(self.conflict_session)}"
        if self.error:
            line += f" failed: {self.error}"
        return line


class SyncReport(BaseModel):
    """Aggregate report for one sync pass.

    Attributes:
        results: Individual results in the order the steps produced them.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass finished, ``None``
            for the partial report of an aborted pass.
    """

    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def by_action(self, action: SyncAction) -> list[SyncResult]:
        """Results produced by *action*."""
        return [r for r in self.results if r.action == action]

    @property
    def imported(self) -> list[SyncResult]:
        """Dates written into the canonical store from a replica."""
        return [
            r
            for r in self.results
            if r.success
            and r.action
            in (
                SyncAction.CACHE_MERGE,
                SyncAction.LOCAL_IMPORT,
                SyncAction.CLOUD_IMPORT,
            )
        ]

    @property
    def exported(self) -> list[SyncResult]:
        """Replica writes made from the canonical store."""
        return [
            r
            for r in self.results
            if r.success
            and r.action
            in (
                SyncAction.LOCAL_CLEANUP,
                SyncAction.CLOUD_EXPORT,
                SyncAction.ARCHIVE_EXPORT,
                SyncAction.BACKUP_REFRESH,
            )
        ]

    @property
    def conflicts(self) -> list[SyncResult]:
        """Results whose write recorded a conflict session."""
        return [r for r in self.results if r.conflict_session is not None]

    @property
    def errors(self) -> list[SyncResult]:
        """Non-fatal failures recorded during the pass."""
        return [r for r in self.results if not r.success]

    @property
    def completed(self) -> bool:
        return self.completed_at is not None

    def log_lines(self) -> list[str]:
        """Human-readable log, one line per result."""
        return [r.log_line() for r in self.results]
