"""
Merge execution.

Takes the output of the Processor and merges the pull requests that are
ready, choosing the merge method and commit message from each
repository's policy.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from gitpr.concurrent import ParallelExecutor
from gitpr.config import Config, RepositoryConfig
from gitpr.context import Context
from gitpr.exceptions import (
    CancelledError,
    GitPRError,
    MergeError,
    ProviderNotFoundError,
    RepositoryConfigNotFoundError,
)
from gitpr.logging import with_fields
from gitpr.providers.base import Provider
from gitpr.types.pulls import MergeMethod, MergeParams, PullRequest
from gitpr.types.repos import Repository
from gitpr.types.results import MergeResult, MergeSummary, ProcessedPR, ProcessResult

_logger = logging.getLogger("gitpr.merge")

# Longer PR bodies are left out of squash commit messages.
_MAX_SQUASH_BODY = 500


@dataclass
class MergeOptions:
    """Per-call switches for ``MergeExecutor.merge_all``."""

    dry_run: bool = False
    force: bool = False  # merge even PRs that were skipped or not ready
    delete_branches: bool = False
    custom_message: str = ""
    require_approval: bool = False


def commit_message(
    pr: PullRequest, method: MergeMethod, custom_message: str = ""
) -> tuple[str, str]:
    """
    Build the (title, body) of the merge commit.

    - squash: "<title> (#<n>)" (unless the title already mentions #<n>),
      with the PR body when it is short
    - merge: "Merge pull request #<n> from <head>", with the PR title
    - rebase: the PR title, no body

    A custom message replaces the title and clears the body.
    """
    if custom_message:
        return custom_message, ""

    if method is MergeMethod.SQUASH:
        title = pr.title
        if f"#{pr.number}" not in title:
            title = f"{title} (#{pr.number})"
        body = pr.body if pr.body and len(pr.body) < _MAX_SQUASH_BODY else ""
        return title, body

    if method is MergeMethod.MERGE:
        return f"Merge pull request #{pr.number} from {pr.head_branch}", pr.title

    return pr.title, ""


class MergeExecutor:
    """
    Merges ready pull requests across providers.

    Example:
        ```python
        executor = MergeExecutor(providers, config)
        merged = executor.merge_all(ctx, results, MergeOptions(dry_run=True))
        ```
    """

    def __init__(
        self,
        providers: Mapping[str, Provider],
        config: Config,
        logger: logging.Logger | None = None,
        executor: ParallelExecutor | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the merge executor.

        Args:
            providers: Authenticated provider handles keyed by provider name
            config: Validated configuration
            logger: Logger (default: gitpr.merge)
            executor: Executor for merge tasks (default: bounded by
                ``config.behavior.concurrency``)
            clock: Returns the current UTC time, injectable for tests
        """
        self.providers = providers
        self.config = config
        self.logger = logger or _logger
        self.executor = executor or ParallelExecutor(
            config.behavior.concurrency, logger=self.logger
        )
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def merge_all(
        self,
        ctx: Context,
        results: list[ProcessResult],
        options: MergeOptions | None = None,
    ) -> list[MergeResult]:
        """
        Merge every eligible pull request.

        Repositories that failed processing are skipped entirely. Every
        other pull request yields exactly one MergeResult, in input order.
        A failed merge is recorded on its result and does not stop the
        others.

        Args:
            ctx: Cancellation context
            results: Output of ``Processor.process_all``
            options: Merge switches

        Returns:
            One MergeResult per pull request submitted

        Raises:
            CancelledError: If the context is cancelled
        """
        options = options or MergeOptions()
        dry_run = options.dry_run or self.config.behavior.dry_run

        slots: list[MergeResult | None] = []
        tasks = []

        for result in results:
            if result.error is not None:
                self.logger.warning(
                    "Skipping repository %s due to processing error: %s",
                    result.repository.full_name,
                    result.error,
                )
                continue

            provider = self.providers.get(result.provider)
            for processed in result.pull_requests:
                index = len(slots)
                immediate = self._pre_merge_result(result, processed, provider, options)
                slots.append(immediate)
                if immediate is not None or provider is None:
                    continue
                tasks.append(
                    self._make_task(
                        index,
                        slots,
                        provider,
                        result.repository,
                        processed.pull_request,
                        options,
                        dry_run,
                    )
                )

        self.executor.execute(ctx, tasks)

        merge_results = [slot for slot in slots if slot is not None]
        self._log_summary(merge_results, dry_run)
        return merge_results

    def validate_mergeability(self, results: list[ProcessResult]) -> None:
        """
        Check that every repository with ready PRs has a provider handle.

        Raises:
            GitPRError: Listing every provider that is missing
        """
        missing = []
        for result in results:
            if result.error is not None or result.provider in self.providers:
                continue
            if any(pr.ready for pr in result.pull_requests):
                missing.append(f"provider {result.provider} not available")

        if missing:
            raise GitPRError("VALIDATION_ERROR", "; ".join(sorted(set(missing))))

    def _make_task(
        self,
        index: int,
        slots: list[MergeResult | None],
        provider: Provider,
        repo: Repository,
        pr: PullRequest,
        options: MergeOptions,
        dry_run: bool,
    ):
        def task(task_ctx: Context) -> None:
            slots[index] = self._merge_pr(task_ctx, provider, repo, pr, options, dry_run)

        return task

    def _pre_merge_result(
        self,
        result: ProcessResult,
        processed: ProcessedPR,
        provider: Provider | None,
        options: MergeOptions,
    ) -> MergeResult | None:
        """Result for PRs decided without a merge attempt, None otherwise."""
        pr = processed.pull_request
        base = MergeResult(
            provider=result.provider,
            repository=result.repository,
            pr_number=pr.number,
            title=pr.title,
            author=pr.author.login,
        )

        if processed.error is not None:
            base.skipped = True
            base.reason = f"processing error: {processed.error}"
            return base

        if not options.force and (processed.skipped or not processed.ready):
            base.skipped = True
            base.reason = processed.reason
            return base

        if provider is None:
            self.logger.warning("Provider %s not available", result.provider)
            base.error = ProviderNotFoundError(result.provider)
            base.reason = str(base.error)
            return base

        return None

    def _merge_pr(
        self,
        ctx: Context,
        provider: Provider,
        repo: Repository,
        pr: PullRequest,
        options: MergeOptions,
        dry_run: bool,
    ) -> MergeResult:
        log = with_fields(
            self.logger,
            provider=provider.name,
            repository=repo.full_name,
            pr_number=pr.number,
        )
        result = MergeResult(
            provider=provider.name,
            repository=repo,
            pr_number=pr.number,
            title=pr.title,
            author=pr.author.login,
        )

        repo_config = self.config.find_repository(provider.name, repo.full_name)
        if repo_config is None:
            result.error = RepositoryConfigNotFoundError(repo.full_name)
            result.reason = result.error.message
            return result

        method = MergeMethod.parse(repo_config.merge_strategy)
        result.merge_method = method
        title, body = commit_message(pr, method, options.custom_message)
        params = MergeParams(
            method=method,
            commit_title=title,
            commit_message=body,
            sha=pr.head_sha,
            delete_branch=(
                options.delete_branches
                or repo_config.delete_branches
                or self.config.behavior.delete_branches
            ),
        )

        if dry_run:
            log.info("[DRY RUN] Would merge PR with method %s", method.value)
            result.success = True
            result.reason = "dry run - would merge"
            return result

        if (
            options.require_approval
            or self.config.behavior.require_approval
            or repo_config.min_approvals > 0
        ):
            try:
                approved = self._has_approvals(ctx, provider, repo, pr, repo_config)
            except CancelledError:
                raise
            except Exception as e:
                result.error = MergeError(
                    provider.name, repo.full_name, pr.number, f"failed to get approvals: {e}"
                )
                result.reason = result.error.message
                log.error("Failed to get approvals: %s", e)
                return result
            if not approved:
                result.skipped = True
                result.reason = "insufficient approvals"
                log.info("Skipping PR: insufficient approvals")
                return result

        log.info("Merging PR with method %s", method.value)
        try:
            sha = provider.merge_pull_request(ctx, repo, pr, params)
        except CancelledError:
            raise
        except Exception as e:
            result.error = MergeError(
                provider.name, repo.full_name, pr.number, f"merge failed: {e}"
            )
            result.reason = result.error.message
            log.error("Failed to merge PR: %s", e)
            return result

        result.success = True
        result.merged_at = self._now()
        result.commit_sha = sha
        result.reason = "successfully merged"
        log.info("Successfully merged PR #%d", pr.number)
        return result

    def _has_approvals(
        self,
        ctx: Context,
        provider: Provider,
        repo: Repository,
        pr: PullRequest,
        repo_config: RepositoryConfig,
    ) -> bool:
        required = max(1, repo_config.min_approvals)
        return provider.get_approvals(ctx, repo, pr) >= required

    def _log_summary(self, results: list[MergeResult], dry_run: bool) -> None:
        summary = MergeSummary.from_results(results, dry_run=dry_run)
        action = "would merge" if dry_run else "merged"
        self.logger.info(
            "Merge operations completed: %s %d PRs (total=%d successful=%d "
            "skipped=%d failed=%d dry_run=%s)",
            action,
            summary.successful,
            summary.total,
            summary.successful,
            summary.skipped,
            summary.failed,
            dry_run,
        )
        for result in results:
            if result.error is not None and not result.skipped:
                self.logger.error(
                    "Failed to merge PR #%d in %s: %s",
                    result.pr_number,
                    result.repository.full_name,
                    result.error,
                )


__all__ = ["MergeExecutor", "MergeOptions", "commit_message"]
