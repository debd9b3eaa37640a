"""
Pytest plugin for git-pr-manager testing fixtures.

Re-exports the fixtures from fixtures.py so pytest discovers them. Add
this to your conftest.py:

    pytest_plugins = ["gitpr.testing.conftest"]
"""

from gitpr.testing.fixtures import (
    ctx,
    mock_provider,
    mock_provider_with_pr,
    sample_config,
    sample_pull_request,
    sample_repository,
)

__all__ = [
    "ctx",
    "mock_provider",
    "mock_provider_with_pr",
    "sample_config",
    "sample_pull_request",
    "sample_repository",
]
