"""git-pr-manager testing utilities.

Provides an in-memory provider and fixtures for testing code that drives
the Processor and MergeExecutor.
"""

from gitpr.testing.fixtures import (
    create_mock_check,
    create_mock_pull_request,
    create_mock_repository,
    create_mock_status,
    create_test_config,
)
from gitpr.testing.mock import MockCall, MockProvider, MockResponse

__all__ = [
    # Mock provider
    "MockProvider",
    "MockCall",
    "MockResponse",
    # Helper functions
    "create_mock_repository",
    "create_mock_pull_request",
    "create_mock_check",
    "create_mock_status",
    "create_test_config",
]
