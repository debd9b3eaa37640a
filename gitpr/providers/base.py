"""
Provider capability contract.

Every Git hosting backend implements Provider. BaseProvider supplies the
shared plumbing: each network call first takes a rate limiter token and
runs inside the retry primitive, so quota and transient failures are
handled the same way for every backend.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from gitpr.context import Context
from gitpr.logging import with_fields
from gitpr.ratelimit import RateLimiter, RateLimiterConfig, wait_with_rate_limiter
from gitpr.retry import RetryConfig, retry
from gitpr.transport import HTTPTransport
from gitpr.types.pulls import Check, ListPROptions, MergeParams, PRStatus, PullRequest
from gitpr.types.repos import RateLimit, Repository, User

T = TypeVar("T")


class Provider(ABC):
    """Capability set of a Git hosting backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name ("github", "gitlab", "bitbucket")."""

    @abstractmethod
    def authenticate(self, ctx: Context) -> User:
        """Verify credentials and return the authenticated account."""

    @abstractmethod
    def list_repositories(self, ctx: Context) -> list[Repository]:
        """List repositories visible to the authenticated account."""

    @abstractmethod
    def get_repository(self, ctx: Context, owner: str, name: str) -> Repository:
        """Fetch a single repository."""

    @abstractmethod
    def list_pull_requests(
        self, ctx: Context, repo: Repository, options: ListPROptions
    ) -> list[PullRequest]:
        """List pull requests, following pagination to the end."""

    @abstractmethod
    def get_pull_request(
        self, ctx: Context, repo: Repository, number: int
    ) -> PullRequest:
        """Fetch a single pull request."""

    @abstractmethod
    def get_pr_status(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> PRStatus:
        """Fetch the aggregate commit status of the PR head."""

    @abstractmethod
    def get_checks(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> list[Check]:
        """Fetch the individual CI checks of the PR head."""

    @abstractmethod
    def merge_pull_request(
        self, ctx: Context, repo: Repository, pr: PullRequest, params: MergeParams
    ) -> str | None:
        """Merge a pull request. Returns the merge commit SHA when reported."""

    @abstractmethod
    def get_approvals(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> int:
        """Count approvals on a pull request."""

    @abstractmethod
    def get_rate_limit(self, ctx: Context) -> RateLimit:
        """Report the API quota."""

    def close(self) -> None:
        """Release network resources."""


class BaseProvider(Provider):
    """
    Shared implementation for HTTP-backed providers.

    Subclasses set ``provider_name`` and call ``_execute`` around every
    request they make.
    """

    provider_name = ""

    def __init__(
        self,
        transport: HTTPTransport,
        rate_limiter: RateLimiter | None = None,
        retry_config: RetryConfig | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            transport: HTTP transport bound to the provider's API
            rate_limiter: Limiter shared by all calls to this provider
            retry_config: Retry behavior for transient failures
            logger: Logger (default: gitpr.providers.<name>)
        """
        self.transport = transport
        self.rate_limiter = rate_limiter or RateLimiter(
            RateLimiterConfig(name=self.provider_name)
        )
        self.retry_config = retry_config or RetryConfig()
        self.logger = with_fields(
            logger or logging.getLogger(f"gitpr.providers.{self.provider_name}"),
            provider=self.provider_name,
        )

    @property
    def name(self) -> str:
        return self.provider_name

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "BaseProvider":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _execute(self, ctx: Context, operation: str, fn: Callable[[], T]) -> T:
        """
        Run one API operation under rate limiting and retry.

        A token is taken before every attempt, including retries.
        """

        def attempt() -> T:
            return wait_with_rate_limiter(ctx, self.rate_limiter, fn)

        self.logger.debug("Executing %s", operation)
        return retry(ctx, self.retry_config, attempt, logger=self.logger)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 API timestamp into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_before(value: datetime | None, since: datetime | None) -> bool:
    """True when both are set and ``value`` is strictly earlier than ``since``."""
    if value is None or since is None:
        return False
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return value < since


__all__ = ["BaseProvider", "Provider", "is_before", "parse_timestamp"]
