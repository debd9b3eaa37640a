"""git-pr-manager exception classes."""


class GitPRError(Exception):
    """Base exception for all git-pr-manager errors."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class ConfigurationError(GitPRError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class NoRepositoriesError(GitPRError):
    """Raised when the requested scope resolves to zero repositories."""

    def __init__(self, message: str = "no repositories in scope") -> None:
        super().__init__("NO_REPOSITORIES", message)


class ProviderNotFoundError(GitPRError):
    """Raised when no provider handle exists for a configured provider."""

    def __init__(self, provider: str) -> None:
        super().__init__("PROVIDER_NOT_FOUND", f"provider {provider} not found")
        self.provider = provider


class RepositoryConfigNotFoundError(GitPRError):
    """Raised when no repository policy matches a repository."""

    def __init__(self, repository: str) -> None:
        super().__init__(
            "REPOSITORY_CONFIG_NOT_FOUND", "repository configuration not found"
        )
        self.repository = repository


class RepositoryError(GitPRError):
    """Raised when a repository cannot be resolved or listed."""

    def __init__(self, provider: str, repository: str, message: str) -> None:
        super().__init__("REPOSITORY_ERROR", message)
        self.provider = provider
        self.repository = repository


class PullRequestError(GitPRError):
    """Raised when a single pull request cannot be evaluated."""

    def __init__(
        self, provider: str, repository: str, number: int, message: str
    ) -> None:
        super().__init__("PULL_REQUEST_ERROR", message)
        self.provider = provider
        self.repository = repository
        self.number = number


class MergeError(GitPRError):
    """Raised when merging a pull request fails."""

    def __init__(
        self, provider: str, repository: str, number: int, message: str
    ) -> None:
        super().__init__("MERGE_ERROR", message)
        self.provider = provider
        self.repository = repository
        self.number = number


class CancelledError(GitPRError):
    """Raised when an operation is aborted by its context."""

    def __init__(self, message: str = "context cancelled") -> None:
        super().__init__("CANCELLED", message)


class DeadlineExceededError(CancelledError):
    """Raised when a context deadline passes."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        GitPRError.__init__(self, "DEADLINE_EXCEEDED", message)


class RateLimitTimeoutError(GitPRError):
    """Raised when a rate limiter token is not available in time."""

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(
            "RATE_LIMIT_TIMEOUT",
            f"rate limiter {name} timed out after {timeout:g}s",
        )
        self.name = name
        self.timeout = timeout


class RetryExhaustedError(GitPRError):
    """Raised when every retry attempt has failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            "RETRY_EXHAUSTED",
            f"operation failed after {attempts} attempts: {last_error}",
        )
        self.attempts = attempts
        self.last_error = last_error


class ProviderError(GitPRError):
    """Base class for errors returned by a Git hosting API."""

    def __init__(
        self,
        provider: str,
        code: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(code, message)
        self.provider = provider
        self.status_code = status_code


class AuthenticationError(ProviderError):
    """Raised when credentials are rejected."""

    pass


class AuthorizationError(ProviderError):
    """Raised when access is denied."""

    pass


class NotFoundError(ProviderError):
    """Raised when a resource is not found."""

    pass


class ConflictError(ProviderError):
    """Raised on conflicts (merge conflicts, stale head SHA, etc.)."""

    pass


class ValidationError(ProviderError):
    """Raised when the API rejects a request as invalid."""

    pass


class RateLimitedError(ProviderError):
    """Raised when the API reports the quota as exhausted."""

    def __init__(
        self,
        provider: str,
        code: str,
        message: str,
        retry_after: float,
        status_code: int | None = None,
    ) -> None:
        super().__init__(provider, code, message, status_code)
        self.retry_after = retry_after


class ServerError(ProviderError):
    """Raised on server errors (5xx)."""

    pass


class NetworkError(ProviderError):
    """Raised when the request never produced a response."""

    pass
