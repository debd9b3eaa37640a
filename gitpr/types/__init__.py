"""git-pr-manager type definitions.

This module exports all data model types used by the package.
"""

from gitpr.types.pulls import (
    Check,
    ListPROptions,
    MergeMethod,
    MergeParams,
    PRStatus,
    PullRequest,
)
from gitpr.types.repos import RateLimit, Repository, User, parse_repository_name
from gitpr.types.results import (
    MergeResult,
    MergeSummary,
    ProcessedPR,
    ProcessResult,
    ProcessSummary,
)

__all__ = [
    # Repository types
    "Repository",
    "User",
    "RateLimit",
    "parse_repository_name",
    # Pull request types
    "PullRequest",
    "PRStatus",
    "Check",
    "ListPROptions",
    "MergeMethod",
    "MergeParams",
    # Result types
    "ProcessedPR",
    "ProcessResult",
    "ProcessSummary",
    "MergeResult",
    "MergeSummary",
]
