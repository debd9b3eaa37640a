"""
Exponential-backoff retry.

Wraps an operation in bounded retries with jittered exponential backoff.
Backoff sleeps are cancellable through the caller's Context.
"""

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from gitpr.context import Context
from gitpr.exceptions import (
    CancelledError,
    ProviderError,
    NetworkError,
    RateLimitedError,
    RateLimitTimeoutError,
    RetryExhaustedError,
    ServerError,
)

T = TypeVar("T")

_logger = logging.getLogger("gitpr.retry")

_RETRYABLE_MESSAGES = (
    "connection reset",
    "connection refused",
    "timeout",
    "temporary failure",
    "rate limit",
    "server error",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
)

# Jitter factor (0.05 = ±5%)
_JITTER = 0.05


def is_retryable_error(error: BaseException) -> bool:
    """
    Decide whether an error is worth another attempt.

    Cancellation, limiter timeouts and client errors (4xx other than 429)
    are never retried. Rate limiting, server errors and network failures
    are.

    Args:
        error: The exception raised by the last attempt

    Returns:
        True if the operation should be attempted again
    """
    if isinstance(error, (CancelledError, RateLimitTimeoutError)):
        return False
    if isinstance(error, (RateLimitedError, ServerError, NetworkError)):
        return True
    if isinstance(error, ProviderError):
        return False
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True

    message = str(error).lower()
    return any(pattern in message for pattern in _RETRYABLE_MESSAGES)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_backoff: float = 1.0  # seconds
    backoff_factor: float = 2.0
    max_backoff: float = 30.0  # seconds
    jitter: bool = True
    retry_if: Callable[[BaseException], bool] = field(default=is_retryable_error)
    respect_retry_after: bool = True


def calculate_backoff(config: RetryConfig, attempt: int) -> float:
    """
    Calculate the wait before the attempt following ``attempt``.

    Args:
        config: Retry configuration
        attempt: The attempt that just failed (1-indexed)

    Returns:
        Time to wait in seconds, never above ``config.max_backoff``
    """
    delay = config.initial_backoff * (config.backoff_factor ** (attempt - 1))
    delay = min(delay, config.max_backoff)

    if config.jitter and delay > 0:
        jitter_range = delay * _JITTER
        delay += random.uniform(-jitter_range, jitter_range)
        delay = min(max(delay, 0.0), config.max_backoff)

    return delay


def retry(
    ctx: Context,
    config: RetryConfig,
    fn: Callable[[], T],
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> T:
    """
    Call ``fn`` until it succeeds or the attempts run out.

    Args:
        ctx: Cancellation context, checked before every attempt
        config: Retry configuration
        fn: Operation to run
        logger: Logger for retry diagnostics

    Returns:
        The value returned by the first successful attempt

    Raises:
        CancelledError: If the context is cancelled before or between attempts
        RetryExhaustedError: If every attempt failed with a retryable error
        Exception: The original error when ``config.retry_if`` rejects it
    """
    log = logger or _logger
    attempts = max(1, config.max_attempts)
    attempt = 0

    while True:
        attempt += 1
        ctx.raise_if_cancelled()

        try:
            return fn()
        except CancelledError:
            raise
        except Exception as e:
            if not config.retry_if(e):
                raise
            if attempt >= attempts:
                raise RetryExhaustedError(attempts, e) from e
            last_error = e

        delay = calculate_backoff(config, attempt)
        if config.respect_retry_after and isinstance(last_error, RateLimitedError):
            # The hint raises the floor; max_backoff stays the ceiling.
            delay = min(max(delay, last_error.retry_after), config.max_backoff)

        log.debug(
            "Attempt %d/%d failed, retrying in %.2fs: %s",
            attempt,
            attempts,
            delay,
            last_error,
        )

        if not ctx.sleep(delay):
            ctx.raise_if_cancelled()


__all__ = [
    "RetryConfig",
    "calculate_backoff",
    "is_retryable_error",
    "retry",
]
