"""Sync report formatting functions.

- ``format_sync_report`` -- post-sync summary for the terminal.
- ``format_conflict_session`` -- chunks of one conflict session for review.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from diary_sync.differ import format_chunks
from diary_sync.store.models import format_timestamp

from .models import SyncAction

if TYPE_CHECKING:
    from diary_sync.store.models import ConflictChunk

    from .models import SyncReport

_SECTIONS = [
    (SyncAction.PEER_PULL, "Pulled from peer:"),
    (SyncAction.CACHE_MERGE, "Merged from cache:"),
    (SyncAction.LOCAL_IMPORT, "Imported from local files:"),
    (SyncAction.CLOUD_IMPORT, "Imported from cloud:"),
    (SyncAction.LOCAL_CLEANUP, "Local cleanup:"),
    (SyncAction.CLOUD_EXPORT, "Exported to cloud:"),
    (SyncAction.ARCHIVE_EXPORT, "Archives written:"),
    (SyncAction.BACKUP_REFRESH, "Backups refreshed:"),
]

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a sync report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: A completed or partial sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = "Sync report"
    if not report.completed:
        header += " (INCOMPLETE)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{len(report.imported)} imported, "
        f"{len(report.exported)} exported, "
        f"{len(report.conflicts)} conflicts, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    for action, title in _SECTIONS:
        results = [r for r in report.by_action(action) if r.success]
        if not results:
            continue
        lines.append(title)
        for r in results:
            note = f" ({r.detail})" if r.detail else ""
            lines.append(f"  {r.key}{note}")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts recorded:")
        for r in report.conflicts:
            lines.append(
                f"  {r.key}: session {format_timestamp(r.conflict_session)}"
            )
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.action.value} {r.key}: {r.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict review
# ------------------------------------------------------------------


def format_conflict_session(chunks: list[ConflictChunk]) -> str:
    """Format the chunks of one conflict session for review.

    Lines are prefixed ``+`` (kept on commit), ``-`` (dropped on commit)
    or a space (unchanged).
    """
    if not chunks:
        return "(no conflict)"
    first = chunks[0]
    lines = [
        f"session {format_timestamp(first.session)} "
        f"date {first.diary_date.isoformat()}",
        format_chunks([(c.diff_type, c.diff_text) for c in chunks]),
    ]
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with timing, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "action": r.action.value,
            "key": r.key,
            "success": r.success,
        }
        if r.detail:
            entry["detail"] = r.detail
        if r.conflict_session is not None:
            entry["conflict_session"] = format_timestamp(r.conflict_session)
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "imported": len(report.imported),
            "exported": len(report.exported),
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
        },
        "results": results_list,
    }
