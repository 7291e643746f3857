"""Async utilities for running blocking replica operations from the sync engine."""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        entries = await run_sync(local.import_from_local)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def gather_settled(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently and wait for all of them to finish.

    Unlike a plain ``asyncio.gather`` the remaining coroutines are not
    abandoned when one fails: every coroutine settles first, then the
    first exception (in input order) is raised.

    Args:
        coros: Sequence of coroutines to run concurrently.

    Returns:
        List of results in the same order as input coroutines.
    """
    results = await asyncio.gather(*coros, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    for extra in errors[1:]:
        logger.error("Concurrent branch also failed: %s", extra)
    if errors:
        raise errors[0]
    return list(results)  # type: ignore[arg-type]
