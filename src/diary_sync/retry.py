"""Retry policy for idempotent replica transport calls."""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .errors import TransportError

logger = logging.getLogger(__name__)


def transport_retry(
    max_attempts: int = 4,
    initial_wait: float = 0.5,
    max_wait: float = 8.0,
):
    """Retry decorator for read/list/upload calls against a replica.

    Only ``TransportError`` is retried; the last error is re-raised once
    the attempts are exhausted.  Never apply this to destructive calls
    (delete, clear-remote-cache).

    Args:
        max_attempts: Max attempts, including the first call
        initial_wait: First backoff delay (seconds)
        max_wait: Upper bound on a single backoff delay (seconds)
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(multiplier=initial_wait, max=max_wait),
        retry=retry_if_exception_type(TransportError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
