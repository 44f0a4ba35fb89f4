"""
Retry policy for transient graph store failures.

Only StoreErrors whose kind is transient (deadlock, service unavailable,
session expired, generic transient, transaction conflict) are retried, up to
three attempts in total with exponential backoff. Anything else propagates on
the first failure. When attempts run out the last error is re-raised as is.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from ..config import settings
from .errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_RETRY_ATTEMPTS = 3


def is_transient_error(exception: BaseException) -> bool:
    """True if the exception is a StoreError tagged with a transient kind."""
    return isinstance(exception, StoreError) and exception.is_transient


def default_wait() -> wait_base:
    """Exponential backoff built from RetrySettings."""
    config = settings.retry
    return wait_exponential(multiplier=config.wait_multiplier, min=config.wait_min, max=config.wait_max)


async def retry_on_transient(
    operation: Callable[[], Awaitable[T]],
    attempts: int = TRANSIENT_RETRY_ATTEMPTS,
    wait: wait_base | None = None,
) -> T:
    """
    Run ``operation`` and retry it while it fails with a transient StoreError.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        attempts: Total attempt ceiling (first try included)
        wait: tenacity wait strategy (defaults to RetrySettings backoff)

    Returns:
        Whatever the first successful attempt returned.

    Raises:
        StoreError: The original error, when it is permanent or retries ran out.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(is_transient_error),
        stop=stop_after_attempt(attempts),
        wait=wait if wait is not None else default_wait(),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await operation()
    return result
