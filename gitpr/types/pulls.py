"""Pull request-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from gitpr.types.repos import User


class MergeMethod(str, Enum):
    """How a pull request is merged."""

    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"

    @classmethod
    def parse(cls, value: "str | MergeMethod | None") -> "MergeMethod":
        """Parse a strategy name, defaulting to squash for empty or unknown values."""
        if isinstance(value, MergeMethod):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.SQUASH


@dataclass(frozen=True)
class PullRequest:
    """Snapshot of a pull request, fetched fresh on every discovery."""

    id: str
    number: int
    title: str
    body: str
    state: str  # "open", "closed", "merged"
    author: User
    head_branch: str
    base_branch: str
    head_sha: str
    labels: list[str] = field(default_factory=list)
    draft: bool = False
    locked: bool = False
    mergeable: bool | None = None  # None while the provider is still computing
    mergeable_state: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    merged_at: datetime | None = None
    url: str = ""

    def has_label(self, names: "set[str] | list[str]") -> bool:
        """Case-insensitive check for any of ``names`` among the PR labels."""
        wanted = {n.lower() for n in names}
        return any(label.lower() in wanted for label in self.labels)


@dataclass(frozen=True)
class PRStatus:
    """Aggregate commit status for the PR head."""

    state: str  # "pending", "success", "error", "failure"
    description: str = ""
    context: str = ""
    url: str = ""

    @property
    def successful(self) -> bool:
        return self.state == "success"


_FAILED_CONCLUSIONS = {"failure", "cancelled", "timed_out"}
_SUCCESSFUL_CONCLUSIONS = {"success", "neutral"}


@dataclass(frozen=True)
class Check:
    """A single CI check (check run, pipeline or build status)."""

    id: str
    name: str
    status: str  # "queued", "in_progress", "completed"
    conclusion: str = ""  # "success", "failure", "neutral", "cancelled", "timed_out", "skipped"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    url: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def failed(self) -> bool:
        return self.completed and self.conclusion in _FAILED_CONCLUSIONS

    @property
    def successful(self) -> bool:
        return self.completed and self.conclusion in _SUCCESSFUL_CONCLUSIONS


@dataclass
class ListPROptions:
    """Options for listing pull requests."""

    state: str = "open"  # "open", "closed", "all"
    sort: str = "created"
    direction: str = "desc"
    per_page: int = 100
    since: datetime | None = None


@dataclass
class MergeParams:
    """Parameters for a single provider merge call."""

    method: MergeMethod = MergeMethod.SQUASH
    commit_title: str = ""
    commit_message: str = ""
    sha: str = ""  # expected head SHA; empty skips the check
    delete_branch: bool = False
