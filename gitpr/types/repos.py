"""Repository-related data models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class User:
    """Account on a Git hosting service."""

    login: str
    id: str = ""
    name: str | None = None
    email: str | None = None
    type: str = "User"  # "User", "Bot"


@dataclass(frozen=True)
class Repository:
    """Repository information."""

    id: str
    name: str
    full_name: str  # "owner/name"
    owner: str
    provider: str  # "github", "gitlab", "bitbucket"
    default_branch: str = "main"
    private: bool = False
    archived: bool = False
    url: str = ""
    clone_url: str = ""
    description: str | None = None
    updated_at: datetime | None = None
    topics: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RateLimit:
    """API quota as reported (or estimated) by a provider."""

    limit: int
    remaining: int
    reset_at: datetime | None = None
    used: int = 0


def parse_repository_name(full_name: str) -> tuple[str, str]:
    """
    Split an "owner/name" repository string.

    Nested groups (GitLab) keep everything before the last slash as owner.

    Raises:
        ValueError: If the string is not in owner/name form
    """
    owner, sep, name = full_name.strip().rpartition("/")
    if not sep or not owner or not name:
        raise ValueError(
            f"invalid repository format: {full_name!r} (expected owner/name)"
        )
    return owner, name
