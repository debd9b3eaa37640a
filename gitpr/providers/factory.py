"""Builds authenticated provider handles from configuration."""

import logging

import httpx

from gitpr.config import Config
from gitpr.exceptions import ConfigurationError
from gitpr.providers.base import Provider
from gitpr.providers.bitbucket import BitbucketProvider
from gitpr.providers.github import GitHubProvider
from gitpr.providers.gitlab import GitLabProvider
from gitpr.ratelimit import RateLimiterManager

_logger = logging.getLogger("gitpr.providers")


class ProviderFactory:
    """
    Creates one provider per configured set of credentials.

    All providers share one RateLimiterManager, keyed by provider name, so
    that every caller talking to the same host draws from the same bucket.
    """

    def __init__(
        self,
        config: Config,
        limiters: RateLimiterManager | None = None,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the factory.

        Args:
            config: Validated configuration
            limiters: Shared rate limiter registry (default: a new one)
            transport: Optional httpx transport passed to every provider (tests)
            logger: Optional logger
        """
        self.config = config
        self.limiters = limiters or RateLimiterManager()
        self.transport = transport
        self._logger = logger or _logger

    def create_providers(self) -> dict[str, Provider]:
        """
        Create every provider that has credentials.

        Raises:
            ConfigurationError: If no provider could be created
        """
        providers: dict[str, Provider] = {}
        for name in ("github", "gitlab", "bitbucket"):
            if self.config.auth.has_credentials(name):
                providers[name] = self.create_provider(name)

        if not providers:
            raise ConfigurationError("no providers configured")

        self._logger.debug("Created providers: %s", ", ".join(providers))
        return providers

    def create_provider(self, name: str) -> Provider:
        """
        Create a single provider by name.

        Raises:
            ConfigurationError: If the name is unknown or credentials are missing
        """
        auth = self.config.auth
        limiter = self.limiters.get_or_create(name, self.config.rate_limiter_config(name))
        retry_config = self.config.retry_config()

        if name == "github":
            return GitHubProvider(
                token=auth.github.token,
                base_url=auth.github.base_url or None,
                rate_limiter=limiter,
                retry_config=retry_config,
                transport=self.transport,
            )
        if name == "gitlab":
            return GitLabProvider(
                token=auth.gitlab.token,
                url=auth.gitlab.url or None,
                rate_limiter=limiter,
                retry_config=retry_config,
                transport=self.transport,
            )
        if name == "bitbucket":
            return BitbucketProvider(
                username=auth.bitbucket.username,
                app_password=auth.bitbucket.app_password,
                workspace=auth.bitbucket.workspace,
                rate_limiter=limiter,
                retry_config=retry_config,
                transport=self.transport,
            )
        raise ConfigurationError(f"unsupported provider type: {name}")


def create_providers(
    config: Config, limiters: RateLimiterManager | None = None
) -> dict[str, Provider]:
    """Shorthand for ``ProviderFactory(config, limiters).create_providers()``."""
    return ProviderFactory(config, limiters).create_providers()


__all__ = ["ProviderFactory", "create_providers"]
