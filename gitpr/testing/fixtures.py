"""
Pytest fixtures for git-pr-manager testing.

Provides common fixtures and factory helpers for testing code built on
the Processor and MergeExecutor.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Generator

import pytest

from gitpr.config import Config
from gitpr.context import Context
from gitpr.testing.mock import MockProvider
from gitpr.types.pulls import Check, PRStatus, PullRequest
from gitpr.types.repos import Repository, User

DEPENDABOT = "dependabot[bot]"


# ============================================================================
# Helper Functions
# ============================================================================


def create_mock_repository(
    full_name: str = "owner/repo",
    provider: str = "github",
    **kwargs: Any,
) -> Repository:
    """
    Create a Repository with customizable fields.

    Args:
        full_name: Repository in owner/name form
        provider: Provider name
        **kwargs: Additional fields to override

    Returns:
        Repository object
    """
    owner, _, name = full_name.rpartition("/")
    defaults = {
        "id": f"{provider}-{full_name}",
        "name": name,
        "owner": owner,
        "default_branch": "main",
        "url": f"https://{provider}.example/{full_name}",
        "clone_url": f"https://{provider}.example/{full_name}.git",
    }
    defaults.update(kwargs)
    return Repository(full_name=full_name, provider=provider, **defaults)


def create_mock_pull_request(
    number: int = 1,
    author: str = DEPENDABOT,
    title: str | None = None,
    **kwargs: Any,
) -> PullRequest:
    """
    Create an open, mergeable PullRequest with customizable fields.

    Args:
        number: PR number
        author: Author login
        title: PR title (default: "Bump dependency <number>")
        **kwargs: Additional fields to override

    Returns:
        PullRequest object
    """
    now = datetime.now(timezone.utc)
    defaults = {
        "id": f"pr-{number}",
        "body": "",
        "state": "open",
        "head_branch": f"dependabot/pip/dep-{number}",
        "base_branch": "main",
        "head_sha": f"{number:040x}",
        "mergeable": True,
        "created_at": now - timedelta(hours=1),
        "updated_at": now - timedelta(hours=1),
    }
    defaults.update(kwargs)
    return PullRequest(
        number=number,
        title=title if title is not None else f"Bump dependency {number}",
        author=User(login=author, type="Bot" if author.endswith("[bot]") else "User"),
        **defaults,
    )


def create_mock_check(
    name: str = "ci",
    status: str = "completed",
    conclusion: str = "success",
    **kwargs: Any,
) -> Check:
    """Create a Check (completed and successful by default)."""
    kwargs.setdefault("id", f"check-{name}")
    return Check(name=name, status=status, conclusion=conclusion, **kwargs)


def create_mock_status(state: str = "success", **kwargs: Any) -> PRStatus:
    """Create a PRStatus."""
    return PRStatus(state=state, **kwargs)


def create_test_config(
    repositories: dict[str, list[Any]] | None = None,
    **overrides: Any,
) -> Config:
    """
    Build a validated Config with GitHub credentials and dependabot allowed.

    Args:
        repositories: Provider to repository entries (default: one GitHub repo)
        **overrides: Top-level sections to replace ("pr_filters", "behavior", ...)

    Returns:
        Config object
    """
    data: dict[str, Any] = {
        "pr_filters": {"allowed_actors": [DEPENDABOT]},
        "repositories": repositories or {"github": [{"name": "owner/repo"}]},
        "auth": {
            "github": {"token": "ghp_test"},
            "gitlab": {"token": "glpat-test"},
            "bitbucket": {"username": "user", "app_password": "secret"},
        },
        "behavior": {"concurrency": 2},
    }
    data.update(overrides)
    return Config.from_dict(data, env={})


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def ctx() -> Generator[Context, None, None]:
    """Provide a live Context, cancelled after the test."""
    context = Context.background().child()
    yield context
    context.cancel()


@pytest.fixture
def mock_provider() -> Generator[MockProvider, None, None]:
    """
    Provide a MockProvider named "github".

    Example:
        ```python
        def test_merge(mock_provider):
            mock_provider.add_pull_request("owner/repo", create_mock_pull_request())
            ...
            assert mock_provider.call_count("merge_pull_request") == 1
        ```
    """
    provider = MockProvider("github")
    yield provider
    provider.reset()


@pytest.fixture
def sample_repository() -> Repository:
    """Provide a sample Repository object."""
    return create_mock_repository("owner/repo")


@pytest.fixture
def sample_pull_request() -> PullRequest:
    """Provide a sample dependabot PullRequest object."""
    return create_mock_pull_request(
        number=42,
        title="Bump requests from 2.31.0 to 2.32.0",
        body="Bumps requests.",
        created_at=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_config() -> Config:
    """Provide a Config with one GitHub repository and dependabot allowed."""
    return create_test_config()


@pytest.fixture
def mock_provider_with_pr(
    mock_provider: MockProvider,
    sample_repository: Repository,
) -> MockProvider:
    """
    Provide a MockProvider holding one ready dependabot PR in owner/repo.

    Example:
        ```python
        def test_flow(mock_provider_with_pr, sample_config, ctx):
            results = Processor({"github": mock_provider_with_pr}, sample_config).process_all(ctx)
            assert results[0].pull_requests[0].ready
        ```
    """
    mock_provider.add_repository(sample_repository)
    mock_provider.add_pull_request(
        sample_repository.full_name,
        create_mock_pull_request(number=1),
        status=create_mock_status("success"),
        checks=[create_mock_check()],
    )
    return mock_provider
