"""
Token-bucket rate limiting.

Each named resource (usually one per provider) gets its own bucket. The
bucket refills at ``requests_per_second`` and never holds more than
``burst`` tokens.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from gitpr.context import Context
from gitpr.exceptions import RateLimitTimeoutError

T = TypeVar("T")

_logger = logging.getLogger("gitpr.ratelimit")


@dataclass
class RateLimiterConfig:
    """Configuration for a rate limiter."""

    requests_per_second: float = 1.0
    burst: int = 5
    timeout: float = 30.0  # seconds
    name: str = "default"


@dataclass
class RateLimiterState:
    """Point-in-time statistics for a rate limiter."""

    name: str
    limit: float
    burst: int
    tokens: int
    timeout: float

    def __str__(self) -> str:
        return (
            f"RateLimit[{self.name}]: {self.limit:.2f} req/s, burst={self.burst}, "
            f"tokens={self.tokens}, timeout={self.timeout:g}s"
        )


class RateLimiter:
    """
    Thread-safe token bucket.

    Example:
        ```python
        limiter = RateLimiter(RateLimiterConfig(requests_per_second=5, burst=10))
        limiter.wait(ctx)
        response = client.get("/repos")
        ```
    """

    def __init__(
        self,
        config: RateLimiterConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize a rate limiter.

        Non-positive values fall back to 1 req/s, a burst of 1 and a 30s
        timeout respectively.

        Args:
            config: Limiter configuration (default: RateLimiterConfig())
            clock: Monotonic clock, injectable for tests
        """
        config = config or RateLimiterConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._rate = config.requests_per_second if config.requests_per_second > 0 else 1.0
        self._burst = config.burst if config.burst > 0 else 1
        self._timeout = config.timeout if config.timeout > 0 else 30.0
        self._name = config.name
        self._tokens = float(self._burst)
        self._updated = clock()

    @property
    def name(self) -> str:
        return self._name

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(float(self._burst), self._tokens + elapsed * self._rate)
        self._updated = now

    def _try_acquire(self) -> float:
        """Take a token if one is available, else return the wait needed."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self._rate

    def allow(self) -> bool:
        """Take a token without blocking. Returns False when none is available."""
        return self._try_acquire() == 0.0

    def wait(self, ctx: Context) -> None:
        """
        Block until a token is available.

        The wait is bounded by the limiter timeout and by the context
        deadline, whichever comes first.

        Args:
            ctx: Cancellation context

        Raises:
            RateLimitTimeoutError: If no token can be had within the timeout
            CancelledError: If the context is cancelled while waiting
        """
        start = self._clock()
        with self._lock:
            timeout = self._timeout
        deadline = start + timeout
        if ctx.deadline is not None:
            deadline = min(deadline, ctx.deadline)

        _logger.debug("Rate limiter %s: waiting for permission", self._name)

        while True:
            ctx.raise_if_cancelled()
            needed = self._try_acquire()
            if needed == 0.0:
                break
            if self._clock() + needed > deadline:
                ctx.raise_if_cancelled()
                raise RateLimitTimeoutError(self._name, timeout)
            if not ctx.sleep(needed):
                ctx.raise_if_cancelled()

        waited = self._clock() - start
        if waited > 0.001:
            _logger.debug(
                "Rate limiter %s: waited %.3fs for permission", self._name, waited
            )

    def update_config(self, config: RateLimiterConfig) -> None:
        """
        Apply new settings in place.

        Only positive values (and a non-empty name) are applied. Accumulated
        tokens are kept, clipped to the new burst.
        """
        with self._lock:
            self._refill()
            if config.requests_per_second > 0:
                self._rate = config.requests_per_second
            if config.burst > 0:
                self._burst = config.burst
                self._tokens = min(self._tokens, float(self._burst))
            if config.timeout > 0:
                self._timeout = config.timeout
            if config.name:
                self._name = config.name

    def stats(self) -> RateLimiterState:
        """Return the limiter's current statistics."""
        with self._lock:
            self._refill()
            return RateLimiterState(
                name=self._name,
                limit=self._rate,
                burst=self._burst,
                tokens=int(self._tokens),
                timeout=self._timeout,
            )


class RateLimiterManager:
    """Registry of named rate limiters shared across components."""

    def __init__(self) -> None:
        self._limiters: dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self, name: str, config: RateLimiterConfig | None = None
    ) -> RateLimiter:
        """
        Get the limiter registered under ``name``, creating it if needed.

        When the limiter already exists and ``config`` is given, the config
        is applied to the existing limiter.
        """
        with self._lock:
            limiter = self._limiters.get(name)
            if limiter is not None:
                if config is not None:
                    limiter.update_config(config)
                return limiter

            base = config or RateLimiterConfig()
            limiter = RateLimiter(
                RateLimiterConfig(
                    requests_per_second=base.requests_per_second,
                    burst=base.burst,
                    timeout=base.timeout,
                    name=name,
                )
            )
            self._limiters[name] = limiter
            _logger.debug("Created rate limiter %s", name)
            return limiter

    def get(self, name: str) -> RateLimiter | None:
        with self._lock:
            return self._limiters.get(name)

    def update(self, name: str, config: RateLimiterConfig) -> None:
        """
        Update an existing limiter.

        Raises:
            KeyError: If no limiter is registered under ``name``
        """
        with self._lock:
            limiter = self._limiters.get(name)
        if limiter is None:
            raise KeyError(f"rate limiter {name} not found")
        limiter.update_config(config)

    def remove(self, name: str) -> None:
        with self._lock:
            self._limiters.pop(name, None)

    def all_stats(self) -> dict[str, RateLimiterState]:
        with self._lock:
            limiters = dict(self._limiters)
        return {name: limiter.stats() for name, limiter in limiters.items()}


def wait_with_rate_limiter(
    ctx: Context, limiter: RateLimiter | None, fn: Callable[[], T]
) -> T:
    """Acquire a token from ``limiter`` (when given), then call ``fn``."""
    if limiter is not None:
        limiter.wait(ctx)
    return fn()


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
    "RateLimiterManager",
    "RateLimiterState",
    "wait_with_rate_limiter",
]
