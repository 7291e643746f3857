"""Durable storage for diary entries, cache items and conflict chunks."""

from .cache import CacheStore
from .conflicts import ConflictLog
from .db import DiaryDatabase
from .entries import EntryStore
from .models import CacheItem, ConflictChunk, DiffType, Entry

__all__ = [
    "CacheItem",
    "CacheStore",
    "ConflictChunk",
    "ConflictLog",
    "DiaryDatabase",
    "DiffType",
    "Entry",
    "EntryStore",
]
