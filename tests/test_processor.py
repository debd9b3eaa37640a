"""
Tests for pull request discovery and readiness evaluation.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gitpr.context import Context
from gitpr.exceptions import (
    CancelledError,
    NoRepositoriesError,
    ProviderNotFoundError,
    PullRequestError,
    RepositoryError,
    ServerError,
)
from gitpr.processor import (
    READY_REASON,
    ProcessOptions,
    Processor,
    evaluate_readiness,
    is_author_allowed,
)
from gitpr.testing import (
    MockProvider,
    create_mock_check,
    create_mock_pull_request,
    create_mock_repository,
    create_mock_status,
    create_test_config,
)
from gitpr.testing.fixtures import DEPENDABOT
from gitpr.types.pulls import PRStatus
from gitpr.types.repos import User
from gitpr.types.results import ProcessedPR, ProcessResult, ProcessSummary

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def processor_for(providers, config) -> Processor:
    return Processor(providers, config, clock=lambda: NOW)


def verdicts(results: list[ProcessResult]) -> dict[int, tuple[bool, bool, str]]:
    return {
        p.pull_request.number: (p.ready, p.skipped, p.reason)
        for result in results
        for p in result.pull_requests
    }


class TestProcessAll:
    """Tests for Processor.process_all()."""

    def test_dependabot_scenario(self, mock_provider: MockProvider, ctx: Context) -> None:
        config = create_test_config(
            pr_filters={"allowed_actors": [DEPENDABOT], "skip_labels": ["do-not-merge"]}
        )
        recent = NOW - timedelta(hours=2)
        mock_provider.add_pull_request(
            "owner/repo", create_mock_pull_request(1, created_at=recent)
        )
        mock_provider.add_pull_request(
            "owner/repo", create_mock_pull_request(2, author="alice", created_at=recent)
        )
        mock_provider.add_pull_request(
            "owner/repo",
            create_mock_pull_request(3, labels=["Do-Not-Merge"], created_at=recent),
        )
        mock_provider.add_pull_request(
            "owner/repo", create_mock_pull_request(4, draft=True, created_at=recent)
        )

        results = processor_for({"github": mock_provider}, config).process_all(ctx)

        assert len(results) == 1
        assert results[0].error is None
        assert verdicts(results) == {
            1: (True, False, READY_REASON),
            2: (False, True, "author 'alice' not in allowed actors"),
            3: (False, True, "PR has skip labels"),
            4: (False, False, "PR is a draft"),
        }
        # skipped PRs never reach the status endpoints
        assert mock_provider.call_count("get_pr_status") == 2
        assert mock_provider.call_count("merge_pull_request") == 0

    def test_failed_check_blocks_when_checks_required(
        self, mock_provider: MockProvider, ctx: Context
    ) -> None:
        config = create_test_config(
            repositories={"github": [{"name": "owner/repo", "require_checks": True}]}
        )
        mock_provider.add_pull_request(
            "owner/repo",
            create_mock_pull_request(1, created_at=NOW),
            status=create_mock_status("success"),
            checks=[create_mock_check("build"), create_mock_check("test", conclusion="failure")],
        )

        results = processor_for({"github": mock_provider}, config).process_all(ctx)

        processed = results[0].pull_requests[0]
        assert not processed.ready
        assert processed.reason == "check 'test' failed"
        assert [c.name for c in processed.checks] == ["build", "test"]

    def test_failed_check_ignored_when_checks_not_required(
        self, mock_provider: MockProvider, ctx: Context
    ) -> None:
        config = create_test_config()
        mock_provider.add_pull_request(
            "owner/repo",
            create_mock_pull_request(1, created_at=NOW),
            checks=[create_mock_check("test", conclusion="failure")],
        )

        results = processor_for({"github": mock_provider}, config).process_all(ctx)

        assert results[0].pull_requests[0].ready

    def test_require_checks_from_options(
        self, mock_provider: MockProvider, ctx: Context
    ) -> None:
        mock_provider.add_pull_request(
            "owner/repo",
            create_mock_pull_request(1, created_at=NOW),
            status=create_mock_status("pending"),
        )

        results = processor_for({"github": mock_provider}, create_test_config()).process_all(
            ctx, ProcessOptions(require_checks=True)
        )

        assert results[0].pull_requests[0].reason == "status checks not passing: pending"

    def test_idempotent(self, mock_provider: MockProvider, ctx: Context) -> None:
        config = create_test_config()
        for number in range(1, 6):
            mock_provider.add_pull_request(
                "owner/repo",
                create_mock_pull_request(number, draft=number % 2 == 0, created_at=NOW),
            )
        processor = processor_for({"github": mock_provider}, config)

        first = processor.process_all(ctx)
        second = processor.process_all(ctx)

        assert verdicts(first) == verdicts(second)

    def test_results_follow_configuration_order(self, ctx: Context) -> None:
        config = create_test_config(
            repositories={
                "github": [{"name": f"owner/repo{i}"} for i in range(6)],
                "gitlab": [{"name": "group/project"}],
            }
        )
        providers = {"github": MockProvider("github"), "gitlab": MockProvider("gitlab")}

        results = processor_for(providers, config).process_all(ctx)

        assert [(r.provider, r.repository.full_name) for r in results] == [
            *[("github", f"owner/repo{i}") for i in range(6)],
            ("gitlab", "group/project"),
        ]

    def test_provider_filter(self, ctx: Context) -> None:
        config = create_test_config(
            repositories={
                "github": [{"name": "owner/repo"}],
                "gitlab": [{"name": "group/project"}],
            }
        )
        github, gitlab = MockProvider("github"), MockProvider("gitlab")

        results = processor_for({"github": github, "gitlab": gitlab}, config).process_all(
            ctx, ProcessOptions(providers=["GitLab"])
        )

        assert [r.provider for r in results] == ["gitlab"]
        assert not github.was_called("get_repository")

    def test_repository_substring_filter(self, ctx: Context) -> None:
        config = create_test_config(
            repositories={"github": [{"name": "acme/api"}, {"name": "acme/web"}]}
        )

        results = processor_for({"github": MockProvider()}, config).process_all(
            ctx, ProcessOptions(repositories=["WEB"])
        )

        assert [r.repository.full_name for r in results] == ["acme/web"]

    def test_empty_scope(self, mock_provider: MockProvider, ctx: Context) -> None:
        processor = processor_for({"github": mock_provider}, create_test_config())

        with pytest.raises(NoRepositoriesError):
            processor.process_all(ctx, ProcessOptions(providers=["bitbucket"]))

        assert mock_provider.get_calls() == []

    def test_missing_provider_is_recorded(self, ctx: Context) -> None:
        config = create_test_config(
            repositories={
                "github": [{"name": "owner/repo"}],
                "gitlab": [{"name": "group/project"}],
            }
        )
        github = MockProvider("github")
        github.add_pull_request("owner/repo", create_mock_pull_request(1, created_at=NOW))

        results = processor_for({"github": github}, config).process_all(ctx)

        assert results[0].error is None
        assert len(results[0].pull_requests) == 1
        assert isinstance(results[1].error, ProviderNotFoundError)
        assert results[1].repository.full_name == "group/project"

    def test_repository_failure_isolated(self, ctx: Context) -> None:
        config = create_test_config(
            repositories={
                "github": [{"name": "owner/repo"}],
                "gitlab": [{"name": "group/project"}],
            }
        )
        github, gitlab = MockProvider("github"), MockProvider("gitlab")
        github.configure_get_repository(
            error=ServerError("github", "SERVER_ERROR", "unavailable", 503)
        )
        gitlab.add_pull_request("group/project", create_mock_pull_request(1, created_at=NOW))

        results = processor_for({"github": github, "gitlab": gitlab}, config).process_all(ctx)

        assert isinstance(results[0].error, RepositoryError)
        assert "failed to get repository" in str(results[0].error)
        assert results[0].pull_requests == []
        assert results[1].error is None
        assert results[1].pull_requests[0].ready

    def test_list_failure(self, mock_provider: MockProvider, ctx: Context) -> None:
        mock_provider.configure_list_pull_requests(error=RuntimeError("boom"))

        results = processor_for({"github": mock_provider}, create_test_config()).process_all(ctx)

        assert "failed to list pull requests: boom" in str(results[0].error)

    def test_status_failure_recorded_on_pr(
        self, mock_provider: MockProvider, ctx: Context
    ) -> None:
        mock_provider.add_pull_request("owner/repo", create_mock_pull_request(1, created_at=NOW))
        mock_provider.configure_get_pr_status(error=RuntimeError("status down"))

        results = processor_for({"github": mock_provider}, create_test_config()).process_all(ctx)

        processed = results[0].pull_requests[0]
        assert results[0].error is None
        assert isinstance(processed.error, PullRequestError)
        assert "failed to get PR status" in str(processed.error)
        assert not processed.ready

    def test_checks_failure_recorded_on_pr(
        self, mock_provider: MockProvider, ctx: Context
    ) -> None:
        mock_provider.add_pull_request("owner/repo", create_mock_pull_request(1, created_at=NOW))
        mock_provider.configure_get_checks(error=RuntimeError("checks down"))

        results = processor_for({"github": mock_provider}, create_test_config()).process_all(ctx)

        assert "failed to get PR checks" in str(results[0].pull_requests[0].error)

    def test_max_age_filter_from_config(
        self, mock_provider: MockProvider, ctx: Context
    ) -> None:
        config = create_test_config(
            pr_filters={"allowed_actors": [DEPENDABOT], "max_age": "7d"}
        )
        mock_provider.add_pull_request(
            "owner/repo", create_mock_pull_request(1, created_at=NOW - timedelta(days=30))
        )
        mock_provider.add_pull_request(
            "owner/repo", create_mock_pull_request(2, created_at=NOW - timedelta(days=1))
        )

        results = processor_for({"github": mock_provider}, config).process_all(ctx)

        assert verdicts(results)[1] == (False, True, "PR is older than 7d")
        assert verdicts(results)[2][0]

    def test_list_options(self, mock_provider: MockProvider, ctx: Context) -> None:
        processor = processor_for({"github": mock_provider}, create_test_config())

        processor.process_all(ctx, ProcessOptions(max_age=3600, include_closed=True))

        options = mock_provider.get_calls("list_pull_requests")[0].args[1]
        assert options.state == "all"
        assert options.since == NOW - timedelta(hours=1)

    def test_default_list_options(self, mock_provider: MockProvider, ctx: Context) -> None:
        processor_for({"github": mock_provider}, create_test_config()).process_all(ctx)

        options = mock_provider.get_calls("list_pull_requests")[0].args[1]
        assert options.state == "open"
        assert options.since is None

    def test_skip_labels_from_options_and_repository(
        self, mock_provider: MockProvider, ctx: Context
    ) -> None:
        config = create_test_config(
            repositories={"github": [{"name": "owner/repo", "skip_labels": ["wip"]}]}
        )
        mock_provider.add_pull_request(
            "owner/repo", create_mock_pull_request(1, labels=["wip"], created_at=NOW)
        )
        mock_provider.add_pull_request(
            "owner/repo", create_mock_pull_request(2, labels=["hold"], created_at=NOW)
        )

        results = processor_for({"github": mock_provider}, config).process_all(
            ctx, ProcessOptions(skip_labels=["hold"])
        )

        assert verdicts(results)[1][1]
        assert verdicts(results)[2][1]

    def test_cancelled_context(self, mock_provider: MockProvider) -> None:
        ctx = Context.background().child()
        ctx.cancel()

        with pytest.raises(CancelledError):
            processor_for({"github": mock_provider}, create_test_config()).process_all(ctx)


class GatedListProvider(MockProvider):
    """Holds each listing at a barrier and records the peak number in flight."""

    def __init__(self, parties: int) -> None:
        super().__init__("github")
        self.barrier = threading.Barrier(parties, timeout=5)
        self.in_flight = 0
        self.peak = 0
        self._gate_lock = threading.Lock()

    def list_pull_requests(self, ctx, repo, options):
        with self._gate_lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            self.barrier.wait()
            return super().list_pull_requests(ctx, repo, options)
        finally:
            with self._gate_lock:
                self.in_flight -= 1


class TestProcessConcurrency:
    """Repository tasks run in parallel up to behavior.concurrency."""

    def test_peak_matches_configured_ceiling(self, ctx: Context) -> None:
        names = [f"owner/repo{i}" for i in range(6)]
        provider = GatedListProvider(parties=3)
        for i, name in enumerate(names):
            provider.add_pull_request(name, create_mock_pull_request(i + 1))
        config = create_test_config(
            repositories={"github": [{"name": name} for name in names]},
            behavior={"concurrency": 3},
        )

        results = processor_for({"github": provider}, config).process_all(ctx)

        assert provider.peak == 3
        assert [r.repository.full_name for r in results] == names
        assert all(r.error is None for r in results)
        assert [[p.pull_request.number for p in r.pull_requests] for r in results] == [
            [1], [2], [3], [4], [5], [6]
        ]


class TestEvaluateReadiness:
    """Tests for evaluate_readiness()."""

    @pytest.mark.parametrize(
        ("overrides", "reason"),
        [
            ({"state": "closed"}, "PR is not open"),
            ({"state": "merged"}, "PR is not open"),
            ({"draft": True}, "PR is a draft"),
            ({"locked": True}, "PR is locked"),
            ({"mergeable": False}, "PR has merge conflicts"),
        ],
    )
    def test_blocking_conditions(self, overrides: dict, reason: str) -> None:
        pr = create_mock_pull_request(1, **overrides)

        assert evaluate_readiness(pr, PRStatus("success"), [], False) == (False, reason)

    def test_unknown_mergeability_is_not_blocking(self) -> None:
        pr = create_mock_pull_request(1, mergeable=None)

        assert evaluate_readiness(pr, PRStatus("success"), [], False) == (True, READY_REASON)

    def test_running_check(self) -> None:
        pr = create_mock_pull_request(1)
        checks = [create_mock_check("ci", status="in_progress", conclusion="")]

        assert evaluate_readiness(pr, PRStatus("success"), checks, True) == (
            False,
            "check 'ci' is still running",
        )

    def test_neutral_and_skipped_checks_pass(self) -> None:
        pr = create_mock_pull_request(1)
        checks = [
            create_mock_check("a", conclusion="neutral"),
            create_mock_check("b", conclusion="skipped"),
        ]

        assert evaluate_readiness(pr, PRStatus("success"), checks, True)[0]

    def test_missing_status_with_checks_required(self) -> None:
        pr = create_mock_pull_request(1)

        assert evaluate_readiness(pr, None, [], True) == (
            False,
            "status checks not passing: unknown",
        )

    def test_draft_reported_before_conflicts(self) -> None:
        pr = create_mock_pull_request(1, draft=True, mergeable=False)

        assert evaluate_readiness(pr, None, [], False)[1] == "PR is a draft"


@given(
    state=st.sampled_from(["open", "closed", "merged"]),
    draft=st.booleans(),
    locked=st.booleans(),
    mergeable=st.sampled_from([True, False, None]),
    status=st.sampled_from(["success", "pending", "failure", "error"]),
    conclusions=st.lists(
        st.sampled_from(["success", "failure", "neutral", "cancelled", "timed_out", ""]),
        max_size=4,
    ),
    require_checks=st.booleans(),
)
@settings(max_examples=100)
def test_ready_implies_mergeable_state(
    state: str,
    draft: bool,
    locked: bool,
    mergeable: bool | None,
    status: str,
    conclusions: list[str],
    require_checks: bool,
) -> None:
    """A ready verdict only ever goes to open, non-draft, unlocked, unconflicted PRs."""
    pr = create_mock_pull_request(
        1, state=state, draft=draft, locked=locked, mergeable=mergeable
    )
    checks = [
        create_mock_check(
            f"c{i}",
            status="completed" if conclusion else "in_progress",
            conclusion=conclusion,
        )
        for i, conclusion in enumerate(conclusions)
    ]

    ready, reason = evaluate_readiness(pr, PRStatus(status), checks, require_checks)

    if ready:
        assert reason == READY_REASON
        assert state == "open" and not draft and not locked and mergeable is not False
        if require_checks:
            assert status == "success"
            assert all(c.completed and not c.failed for c in checks)
    else:
        assert reason != READY_REASON


class TestHelpers:
    """Tests for module helpers and summaries."""

    def test_author_match_is_case_insensitive(self) -> None:
        assert is_author_allowed(User(login="Dependabot[bot]"), ["dependabot[bot]"])
        assert not is_author_allowed(User(login="dependabot"), ["dependabot[bot]"])
        assert not is_author_allowed(User(login="anyone"), [])

    def test_process_summary(self) -> None:
        repo_error = ProcessResult(
            provider="github",
            repository=create_mock_repository("a/b"),
            error=RuntimeError("down"),
        )
        ok = ProcessResult(
            provider="github",
            repository=create_mock_repository("a/c"),
            pull_requests=[
                ProcessedPR(create_mock_pull_request(1), ready=True, reason=READY_REASON),
                ProcessedPR(create_mock_pull_request(2), skipped=True),
                ProcessedPR(create_mock_pull_request(3), error=RuntimeError("x")),
                ProcessedPR(create_mock_pull_request(4)),
            ],
        )

        summary = ProcessSummary.from_results([repo_error, ok])

        assert summary.total_repositories == 2
        assert summary.total_prs == 4
        assert summary.ready_prs == 1
        assert summary.skipped_prs == 1
        assert summary.errors == 2
