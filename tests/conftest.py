"""Shared fixtures for the git-pr-manager test suite."""

from gitpr.testing.fixtures import (  # noqa: F401
    ctx,
    mock_provider,
    mock_provider_with_pr,
    sample_config,
    sample_pull_request,
    sample_repository,
)
