"""Concurrency helpers shared by the stores and replica adapters."""

from .async_utils import gather_settled, run_sync
from .locks import KeyedLocks

__all__ = ["KeyedLocks", "gather_settled", "run_sync"]
