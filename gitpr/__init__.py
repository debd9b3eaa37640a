"""git-pr-manager - discover, evaluate and merge pull requests across GitHub, GitLab and Bitbucket."""

from gitpr.concurrent import ParallelExecutor
from gitpr.config import Config, RepositoryConfig, parse_duration
from gitpr.context import Context
from gitpr.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CancelledError,
    ConfigurationError,
    ConflictError,
    DeadlineExceededError,
    GitPRError,
    MergeError,
    NetworkError,
    NoRepositoriesError,
    NotFoundError,
    ProviderError,
    ProviderNotFoundError,
    PullRequestError,
    RateLimitedError,
    RateLimitTimeoutError,
    RepositoryConfigNotFoundError,
    RepositoryError,
    RetryExhaustedError,
    ServerError,
    ValidationError,
)
from gitpr.logging import configure_logging, get_logger
from gitpr.merge import MergeExecutor, MergeOptions
from gitpr.processor import ProcessOptions, Processor
from gitpr.providers import (
    BitbucketProvider,
    GitHubProvider,
    GitLabProvider,
    Provider,
    ProviderFactory,
    create_providers,
)
from gitpr.ratelimit import RateLimiter, RateLimiterConfig, RateLimiterManager
from gitpr.retry import RetryConfig, is_retryable_error, retry
from gitpr.transport import HTTPTransport

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Orchestration
    "Processor",
    "ProcessOptions",
    "MergeExecutor",
    "MergeOptions",
    # Providers
    "Provider",
    "GitHubProvider",
    "GitLabProvider",
    "BitbucketProvider",
    "ProviderFactory",
    "create_providers",
    # Configuration
    "Config",
    "RepositoryConfig",
    "parse_duration",
    # Concurrency and resilience
    "Context",
    "ParallelExecutor",
    "RateLimiter",
    "RateLimiterConfig",
    "RateLimiterManager",
    "RetryConfig",
    "retry",
    "is_retryable_error",
    # Transport
    "HTTPTransport",
    # Exceptions
    "GitPRError",
    "ConfigurationError",
    "NoRepositoriesError",
    "ProviderNotFoundError",
    "RepositoryConfigNotFoundError",
    "RepositoryError",
    "PullRequestError",
    "MergeError",
    "CancelledError",
    "DeadlineExceededError",
    "RateLimitTimeoutError",
    "RetryExhaustedError",
    "ProviderError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "RateLimitedError",
    "ServerError",
    "NetworkError",
    # Logging
    "configure_logging",
    "get_logger",
]
