"""
Error Recovery Helpers
======================

Timeout and retry utilities used around engine invocations.

``with_timeout`` wraps every engine call made by the processor.
``retry_with_backoff`` is opt-in: the processor never retries on its own,
callers decide when an automatic retry is appropriate.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import ErrorFactory, OCRError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(
    operation: Awaitable[T],
    timeout: float | None,
    name: str = "operation",
) -> T:
    """
    Await ``operation`` for at most ``timeout`` seconds.

    Args:
        operation: Awaitable to run
        timeout: Limit in seconds, None for no limit
        name: Operation name reported in the timeout error

    Returns:
        The operation's result

    Raises:
        OCRError: OCR_TIMEOUT when the limit is exceeded
    """
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", name, timeout)
        raise ErrorFactory.timeout(name, timeout) from None


def _should_retry(error: BaseException) -> bool:
    """Non-recoverable OCR errors are never retried."""
    if isinstance(error, OCRError):
        return error.recoverable
    return isinstance(error, Exception)


def _log_before_sleep(retry_state: Any) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "Retrying after recoverable failure in %.1fs (attempt %d): %s",
        retry_state.next_action.sleep,
        retry_state.attempt_number,
        outcome.exception() if outcome is not None else None,
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> T:
    """
    Retry ``operation`` with exponential backoff.

    The delay before attempt ``n + 1`` is ``base_delay * 2**(n - 1)``
    (1s, 2s, 4s with the defaults). An ``OCRError`` with
    ``recoverable=False`` is re-raised immediately without consuming a
    retry; after ``max_retries`` attempts the last error is re-raised.

    Args:
        operation: Zero-argument coroutine function to call per attempt
        max_retries: Total number of attempts
        base_delay: First backoff delay in seconds
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(_should_retry),
        stop=stop_after_attempt(max(1, max_retries)),
        wait=wait_exponential(multiplier=base_delay, min=0),
        before_sleep=_log_before_sleep,
        reraise=True,
    )
    return await retrying(operation)
