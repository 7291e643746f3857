"""Exception taxonomy shared by the stores, replica adapters and sync engine.

- ``TransportError``: a replica (filesystem, object store, ssh peer) could
  not be reached.  Idempotent calls are retried, see ``diary_sync.retry``.
- ``ParseError``: a single item (filename, object key, JSON line) is
  malformed.  Adapters log and skip it.
- ``DataIntegrityError``: the stores disagree with a replica in a way the
  sync pass cannot repair on its own.  Aborts the remaining sequential
  steps of a pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .sync.models import SyncReport


class DiarySyncError(Exception):
    """Base class for all diary-sync errors."""


class TransportError(DiarySyncError):
    """A replica transport (filesystem, object store, ssh) failed."""


class ParseError(DiarySyncError):
    """An item read from a replica could not be parsed."""


class DataIntegrityError(DiarySyncError):
    """Stored data is inconsistent with what a replica reports."""


class ConflictNotFoundError(DataIntegrityError):
    """A conflict session or chunk does not exist."""


class SyncAbortedError(DiarySyncError):
    """A sync pass stopped before completing every step.

    Attributes:
        step: Name of the step that failed.
        report: Partial report with the results of the completed steps.
            Work done by those steps is already committed.
    """

    def __init__(self, step: str, report: SyncReport) -> None:
        super().__init__(f"sync step '{step}' failed")
        self.step = step
        self.report = report
