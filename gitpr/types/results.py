"""Processing and merge outcome models."""

from dataclasses import dataclass, field
from datetime import datetime

from gitpr.types.pulls import Check, MergeMethod, PRStatus, PullRequest
from gitpr.types.repos import Repository


@dataclass
class ProcessedPR:
    """Verdict for one discovered pull request."""

    pull_request: PullRequest
    ready: bool = False
    skipped: bool = False
    reason: str = ""
    status: PRStatus | None = None
    checks: list[Check] = field(default_factory=list)
    error: Exception | None = None


@dataclass
class ProcessResult:
    """Outcome of processing one (provider, repository) pair."""

    provider: str
    repository: Repository
    pull_requests: list[ProcessedPR] = field(default_factory=list)
    error: Exception | None = None


@dataclass
class MergeResult:
    """Outcome of one merge attempt."""

    provider: str
    repository: Repository
    pr_number: int
    title: str = ""
    author: str = ""
    merge_method: MergeMethod | None = None
    merged_at: datetime | None = None
    commit_sha: str | None = None
    success: bool = False
    skipped: bool = False
    reason: str = ""
    error: Exception | None = None


@dataclass
class ProcessSummary:
    """Counts over a batch of process results."""

    total_repositories: int = 0
    total_prs: int = 0
    ready_prs: int = 0
    skipped_prs: int = 0
    errors: int = 0

    @classmethod
    def from_results(cls, results: list[ProcessResult]) -> "ProcessSummary":
        summary = cls(total_repositories=len(results))
        for result in results:
            if result.error is not None:
                summary.errors += 1
                continue
            summary.total_prs += len(result.pull_requests)
            for pr in result.pull_requests:
                if pr.error is not None:
                    summary.errors += 1
                elif pr.skipped:
                    summary.skipped_prs += 1
                elif pr.ready:
                    summary.ready_prs += 1
        return summary


@dataclass
class MergeSummary:
    """Counts over a batch of merge results."""

    total: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False

    @classmethod
    def from_results(
        cls, results: list[MergeResult], dry_run: bool = False
    ) -> "MergeSummary":
        summary = cls(total=len(results), dry_run=dry_run)
        for result in results:
            if result.skipped:
                summary.skipped += 1
            elif result.success:
                summary.successful += 1
            else:
                summary.failed += 1
        return summary
