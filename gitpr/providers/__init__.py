"""Git hosting provider backends."""

from gitpr.providers.base import BaseProvider, Provider
from gitpr.providers.bitbucket import BitbucketProvider
from gitpr.providers.factory import ProviderFactory, create_providers
from gitpr.providers.github import GitHubProvider
from gitpr.providers.gitlab import GitLabProvider

__all__ = [
    "Provider",
    "BaseProvider",
    "GitHubProvider",
    "GitLabProvider",
    "BitbucketProvider",
    "ProviderFactory",
    "create_providers",
]
