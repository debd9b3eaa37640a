"""
Pull request discovery and readiness evaluation.

The Processor walks every configured repository in scope, lists its pull
requests and decides, per PR, whether it is skipped by policy, not yet
ready, or ready to merge.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from gitpr.concurrent import ParallelExecutor
from gitpr.config import Config, RepositoryConfig
from gitpr.context import Context
from gitpr.exceptions import (
    CancelledError,
    NoRepositoriesError,
    ProviderNotFoundError,
    PullRequestError,
    RepositoryError,
)
from gitpr.logging import with_fields
from gitpr.providers.base import Provider
from gitpr.types.pulls import Check, ListPROptions, PRStatus, PullRequest
from gitpr.types.repos import Repository, User, parse_repository_name
from gitpr.types.results import ProcessedPR, ProcessResult, ProcessSummary

_logger = logging.getLogger("gitpr.processor")

READY_REASON = "ready to merge"


@dataclass
class ProcessOptions:
    """Per-call scope and overrides for ``Processor.process_all``."""

    providers: list[str] = field(default_factory=list)  # empty = all
    repositories: list[str] = field(default_factory=list)  # substring filters
    max_age: float = 0.0  # seconds; 0 = no server-side date filter
    require_checks: bool = False
    skip_labels: list[str] = field(default_factory=list)
    include_closed: bool = False


class Processor:
    """
    Discovers pull requests and evaluates their readiness.

    Example:
        ```python
        processor = Processor(providers, config)
        results = processor.process_all(Context.background(), ProcessOptions())
        ready = [pr for r in results for pr in r.pull_requests if pr.ready]
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
        Initialize the processor.

        Args:
            providers: Authenticated provider handles keyed by provider name
            config: Validated configuration
            logger: Logger (default: gitpr.processor)
            executor: Executor for repository tasks (default: bounded by
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

    def process_all(
        self, ctx: Context, options: ProcessOptions | None = None
    ) -> list[ProcessResult]:
        """
        Process every repository in scope.

        Exactly one ProcessResult is returned per (provider, repository)
        pair in scope, in configuration order. Repository and PR failures
        are recorded on the results rather than raised.

        Args:
            ctx: Cancellation context
            options: Scope and overrides

        Returns:
            One ProcessResult per repository in scope

        Raises:
            NoRepositoriesError: If the scope contains no repositories
            CancelledError: If the context is cancelled
        """
        options = options or ProcessOptions()
        scope = self._resolve_scope(options)
        if not scope:
            raise NoRepositoriesError()

        self.logger.info("Processing %d repositories", len(scope))

        results: list[ProcessResult | None] = [None] * len(scope)

        def make_task(index: int, provider_name: str, repo_config: RepositoryConfig):
            def task(task_ctx: Context) -> None:
                results[index] = self._process_repository(
                    task_ctx, provider_name, repo_config, options
                )

            return task

        tasks = [make_task(i, name, repo) for i, (name, repo) in enumerate(scope)]
        self.executor.execute(ctx, tasks)

        final = [result for result in results if result is not None]
        self._log_summary(final)
        return final

    def _resolve_scope(self, options: ProcessOptions) -> list[tuple[str, RepositoryConfig]]:
        wanted_providers = {p.lower() for p in options.providers}
        filters = [f.lower() for f in options.repositories]

        scope = []
        for provider_name, repos in self.config.repositories.items():
            if wanted_providers and provider_name.lower() not in wanted_providers:
                continue
            for repo_config in repos:
                if filters and not any(f in repo_config.name.lower() for f in filters):
                    continue
                scope.append((provider_name, repo_config))
        return scope

    def _process_repository(
        self,
        ctx: Context,
        provider_name: str,
        repo_config: RepositoryConfig,
        options: ProcessOptions,
    ) -> ProcessResult:
        log = with_fields(self.logger, provider=provider_name, repository=repo_config.name)
        log.debug("Processing repository")

        owner, _, name = repo_config.name.rpartition("/")
        result = ProcessResult(
            provider=provider_name,
            repository=Repository(
                id="",
                name=name,
                full_name=repo_config.name,
                owner=owner,
                provider=provider_name,
                default_branch=repo_config.branch,
            ),
        )

        provider = self.providers.get(provider_name)
        if provider is None:
            log.warning("Provider %s not available", provider_name)
            result.error = ProviderNotFoundError(provider_name)
            return result

        try:
            owner, name = parse_repository_name(repo_config.name)
        except ValueError as e:
            result.error = RepositoryError(provider_name, repo_config.name, str(e))
            return result

        try:
            repo = provider.get_repository(ctx, owner, name)
        except CancelledError:
            raise
        except Exception as e:
            log.error("Failed to get repository: %s", e)
            result.error = RepositoryError(
                provider_name, repo_config.name, f"failed to get repository: {e}"
            )
            return result
        result.repository = repo

        list_options = ListPROptions(state="all" if options.include_closed else "open")
        if options.max_age > 0:
            list_options.since = self._now() - timedelta(seconds=options.max_age)

        try:
            pulls = provider.list_pull_requests(ctx, repo, list_options)
        except CancelledError:
            raise
        except Exception as e:
            log.error("Failed to list pull requests: %s", e)
            result.error = RepositoryError(
                provider_name, repo_config.name, f"failed to list pull requests: {e}"
            )
            return result

        log.debug("Found %d pull requests", len(pulls))
        result.pull_requests = [
            self._process_pr(ctx, provider, repo, pr, repo_config, options)
            for pr in pulls
        ]
        return result

    def _process_pr(
        self,
        ctx: Context,
        provider: Provider,
        repo: Repository,
        pr: PullRequest,
        repo_config: RepositoryConfig,
        options: ProcessOptions,
    ) -> ProcessedPR:
        log = with_fields(
            self.logger,
            provider=provider.name,
            repository=repo.full_name,
            pr_number=pr.number,
        )
        processed = ProcessedPR(pull_request=pr)

        skip_reason = self._skip_reason(pr, repo_config, options)
        if skip_reason:
            processed.skipped = True
            processed.reason = skip_reason
            log.debug(skip_reason)
            return processed

        try:
            status = provider.get_pr_status(ctx, repo, pr)
        except CancelledError:
            raise
        except Exception as e:
            processed.error = PullRequestError(
                provider.name, repo.full_name, pr.number, f"failed to get PR status: {e}"
            )
            log.error("Failed to get PR status: %s", e)
            return processed

        try:
            checks = provider.get_checks(ctx, repo, pr)
        except CancelledError:
            raise
        except Exception as e:
            processed.error = PullRequestError(
                provider.name, repo.full_name, pr.number, f"failed to get PR checks: {e}"
            )
            log.error("Failed to get PR checks: %s", e)
            return processed

        processed.status = status
        processed.checks = checks

        require_checks = options.require_checks or repo_config.require_checks
        processed.ready, processed.reason = evaluate_readiness(
            pr, status, checks, require_checks
        )

        if processed.ready:
            log.info("PR is ready for merge")
        else:
            log.debug("PR not ready: %s", processed.reason)
        return processed

    def _skip_reason(
        self, pr: PullRequest, repo_config: RepositoryConfig, options: ProcessOptions
    ) -> str:
        filters = self.config.pr_filters

        if not is_author_allowed(pr.author, filters.allowed_actors):
            return f"author '{pr.author.login}' not in allowed actors"

        skip_labels = [*filters.skip_labels, *repo_config.skip_labels, *options.skip_labels]
        if skip_labels and pr.has_label(skip_labels):
            return "PR has skip labels"

        max_age = filters.max_age_seconds
        if max_age > 0 and pr.created_at is not None:
            if pr.created_at < self._now() - timedelta(seconds=max_age):
                return f"PR is older than {filters.max_age}"

        return ""

    def _log_summary(self, results: list[ProcessResult]) -> None:
        summary = ProcessSummary.from_results(results)
        self.logger.info(
            "PR processing completed: total_repositories=%d total_prs=%d "
            "ready_prs=%d skipped_prs=%d errors=%d",
            summary.total_repositories,
            summary.total_prs,
            summary.ready_prs,
            summary.skipped_prs,
            summary.errors,
        )


def is_author_allowed(author: User, allowed_actors: list[str]) -> bool:
    """Case-insensitive match of the author login against the allow list."""
    login = author.login.lower()
    return any(login == actor.lower() for actor in allowed_actors)


def evaluate_readiness(
    pr: PullRequest,
    status: PRStatus | None,
    checks: list[Check],
    require_checks: bool,
) -> tuple[bool, str]:
    """
    Decide whether a pull request can be merged.

    The first failing condition determines the reason.

    Returns:
        (ready, reason)
    """
    if pr.state != "open":
        return False, "PR is not open"
    if pr.draft:
        return False, "PR is a draft"
    if pr.locked:
        return False, "PR is locked"
    if pr.mergeable is False:
        return False, "PR has merge conflicts"

    if require_checks:
        if status is None or not status.successful:
            state = status.state if status is not None else "unknown"
            return False, f"status checks not passing: {state}"
        for check in checks:
            if not check.completed:
                return False, f"check '{check.name}' is still running"
            if check.failed:
                return False, f"check '{check.name}' failed"

    return True, READY_REASON


__all__ = [
    "ProcessOptions",
    "Processor",
    "READY_REASON",
    "evaluate_readiness",
    "is_author_allowed",
]
