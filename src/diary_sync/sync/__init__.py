"""Replica adapters and the sync engine that reconciles them."""

from .backup import BackupValidator
from .cloud import CloudReplica, KeyCache, ObjectInfo, ObjectStore, S3ObjectStore
from .engine import SyncEngine
from .local import LocalReplica
from .merger import merge_cache_to_entries
from .models import SyncAction, SyncReport, SyncResult
from .peer import PeerReplica, SSHInstance
from .staleness import Freshness, compare_copies

__all__ = [
    "BackupValidator",
    "CloudReplica",
    "Freshness",
    "KeyCache",
    "LocalReplica",
    "ObjectInfo",
    "ObjectStore",
    "PeerReplica",
    "S3ObjectStore",
    "SSHInstance",
    "SyncAction",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "compare_copies",
    "merge_cache_to_entries",
]
