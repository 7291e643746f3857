"""Sync engine: one full reconciliation pass across every replica.

A pass runs these steps in order:

1. Pull the peer's cache over ssh (failure is logged, not fatal).
2. Merge the cache into canonical entries.
3. Import from the local directory and the cloud bucket, concurrently.
4. Clean up the local directory (recent-window files, stale files).
5. Export to the cloud bucket and write yearly archives, concurrently.
6. Validate the offline backup directory.

Each step sees the effect of the previous one on the canonical store.
Blocking adapter calls run in worker threads.  A failure in steps 2-6
aborts the pass with ``SyncAbortedError`` carrying the partial report;
work already committed by earlier steps stays committed.  In a
concurrent step both branches settle before the first error is raised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from diary_sync.core.async_utils import gather_settled, run_sync
from diary_sync.errors import DiarySyncError, SyncAbortedError
from diary_sync.store.cache import CacheStore
from diary_sync.store.entries import EntryStore

from .backup import BackupValidator
from .cloud import CloudReplica
from .local import LocalReplica
from .merger import merge_cache_to_entries
from .models import SyncAction, SyncReport, SyncResult
from .peer import PeerReplica

logger = logging.getLogger(__name__)

Step = Callable[[], list[SyncResult]]


class SyncEngine:
    """Orchestrate a sync pass over the configured replicas.

    Args:
        entries: Canonical store.
        cache: Cache store.
        local: Local directory replica.
        cloud: Cloud replica, or ``None`` when no bucket is configured.
        peer: Peer replica, or ``None`` when no peer is configured.
        backup: Backup validator, or ``None`` when no backup path is set.
    """

    def __init__(
        self,
        entries: EntryStore,
        cache: CacheStore,
        local: LocalReplica,
        cloud: CloudReplica | None = None,
        peer: PeerReplica | None = None,
        backup: BackupValidator | None = None,
    ) -> None:
        self.entries = entries
        self.cache = cache
        self.local = local
        self.cloud = cloud
        self.peer = peer
        self.backup = backup

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(self) -> SyncReport:
        """Run one full pass.

        Returns:
            The report of every step.

        Raises:
            SyncAbortedError: If any step after the peer pull fails.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[SyncResult] = []

        # Step 1: peer pull
        if self.peer is not None:
            try:
                results.extend(await run_sync(self.peer.sync_ssh))
            except DiarySyncError as exc:
                logger.warning("Peer pull from %s failed: %s", self.peer.ssh_url, exc)
                results.append(
                    SyncResult(
                        action=SyncAction.PEER_PULL,
                        key=self.peer.ssh_url or "",
                        success=False,
                        error=str(exc),
                    )
                )

        # Step 2: cache merge
        await self._step(
            "cache merge",
            [lambda: merge_cache_to_entries(self.cache, self.entries)],
            results,
            started_at,
        )

        # Step 3: imports
        imports: list[Step] = [self.local.import_from_local]
        if self.cloud is not None:
            imports.append(self.cloud.import_from_cloud)
        await self._step("import", imports, results, started_at)

        # Step 4: local cleanup
        await self._step(
            "local cleanup", [self.local.cleanup_local], results, started_at
        )

        # Step 5: exports
        exports: list[Step] = []
        if self.cloud is not None:
            exports.append(self.cloud.export_to_cloud)
        exports.append(self.local.export_year_to_local)
        await self._step("export", exports, results, started_at)

        # Step 6: backup validation
        if self.backup is not None:
            await self._step(
                "backup validation",
                [self.backup.validate_backup],
                results,
                started_at,
            )

        report = SyncReport(
            results=results,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            "Sync pass complete: %d results, %d conflicts",
            len(report.results),
            len(report.conflicts),
        )
        return report

    async def sync_everything(self) -> list[str]:
        """Run a pass and return its human-readable log lines."""
        report = await self.run()
        return report.log_lines()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _step(
        self,
        name: str,
        funcs: list[Step],
        results: list[SyncResult],
        started_at: str,
    ) -> None:
        """Run *funcs* concurrently in threads and collect their results."""
        try:
            outputs = await gather_settled([run_sync(f) for f in funcs])
        except Exception as exc:
            logger.error("Sync step '%s' failed: %s", name, exc)
            partial = SyncReport(results=list(results), started_at=started_at)
            raise SyncAbortedError(name, partial) from exc
        for output in outputs:
            results.extend(output)
