"""Retry with exponential backoff for async operations."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0

# Last-resort hints for errors that carry no status code
_TRANSIENT_HINTS = (
    "429",
    "rate limit",
    "rate_limit",
    "overloaded",
    "timeout",
    "timed out",
    "temporarily unavailable",
    "connection reset",
    "econnrefused",
    "network",
)


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code <= 599


def is_transient_error(exc: BaseException) -> bool:
    """Classify an error as transient (worth retrying) or fatal.

    Structured signals win: an explicit ``transient`` flag, then an HTTP
    ``status_code``, then the exception type. Message matching is only used
    when none of those are available.
    """
    transient = getattr(exc, "transient", None)
    if isinstance(transient, bool):
        return transient

    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return is_retryable_status(status_code)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return is_retryable_status(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return True

    message = str(exc).lower()
    return any(hint in message for hint in _TRANSIENT_HINTS)


def backoff_delay(attempt: int, initial_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (0-based): initial * 2^attempt, capped."""
    return min(initial_delay * (2 ** attempt), max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or a non-retryable error occurs.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Total attempts including the first one.
        initial_delay: Backoff before the second attempt, in seconds.
        max_delay: Upper bound for any single backoff.
        is_retryable: Predicate deciding whether an error is transient.
        sleep: Awaitable sleep, replaceable in tests.

    Raises:
        The last error, once attempts are exhausted or the error is fatal.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            attempt += 1
            if attempt >= max_attempts or not is_retryable(e):
                raise
            delay = backoff_delay(attempt - 1, initial_delay, max_delay)
            logger.warning(
                "retrying_after_error",
                attempt=attempt,
                max_attempts=max_attempts,
                delay_s=delay,
                error=str(e)[:200],
            )
            await sleep(delay)
