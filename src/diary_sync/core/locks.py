"""Keyed mutual exclusion.

``KeyedLocks`` maps a hashable key (a diary date, a remote host name) to a
``threading.Lock`` created lazily on first use.  Callers holding different
keys never block each other.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLocks:
    """Lazily created per-key locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def get(self, key: Hashable) -> threading.Lock:
        """Return the lock for *key*, creating it if needed."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for *key* for the duration of the block."""
        lock = self.get(key)
        with lock:
            yield

    def __contains__(self, key: Hashable) -> bool:
        with self._guard:
            return key in self._locks

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
