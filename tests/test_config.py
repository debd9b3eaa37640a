"""
Tests for configuration parsing and validation.
"""

from typing import Any

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gitpr.config import (
    DEFAULT_GITLAB_URL,
    Config,
    format_duration,
    parse_duration,
    resolve_env,
)
from gitpr.exceptions import ConfigurationError
from gitpr.types.pulls import MergeMethod


def base_config(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "pr_filters": {"allowed_actors": ["dependabot[bot]"]},
        "repositories": {"github": [{"name": "owner/repo"}]},
        "auth": {"github": {"token": "ghp_x"}},
    }
    data.update(overrides)
    return data


class TestParseDuration:
    """Tests for parse_duration()."""

    @pytest.mark.parametrize(
        ("value", "seconds"),
        [
            ("30s", 30),
            ("15m", 900),
            ("2h", 7200),
            ("7d", 604800),
            ("1w", 604800),
            ("1y", 31536000),
            ("1h30m", 5400),
            ("500ms", 0.5),
            ("45", 45),
            (12, 12),
            (1.5, 1.5),
            ("", 0),
            (None, 0),
        ],
    )
    def test_valid(self, value: Any, seconds: float) -> None:
        assert parse_duration(value) == pytest.approx(seconds)

    @pytest.mark.parametrize("value", ["abc", "10x", "d7", "1h 30m", "h", True])
    def test_invalid(self, value: Any) -> None:
        with pytest.raises(ConfigurationError):
            parse_duration(value)

    def test_format_duration(self) -> None:
        assert format_duration(30 * 86400) == "30d"
        assert format_duration(7200) == "2h"
        assert format_duration(90) == "90s"


@given(amount=st.integers(min_value=1, max_value=10_000), unit=st.sampled_from(["s", "m", "h", "d", "w"]))
@settings(max_examples=100)
def test_duration_round_trip(amount: int, unit: str) -> None:
    """A formatted duration parses back to the same number of seconds."""
    seconds = parse_duration(f"{amount}{unit}")
    assert parse_duration(format_duration(seconds)) == pytest.approx(seconds)


class TestResolveEnv:
    """Tests for environment references."""

    @pytest.mark.parametrize("reference", ["$TOKEN", "${TOKEN}"])
    def test_reference(self, reference: str) -> None:
        assert resolve_env(reference, {"TOKEN": "secret"}) == "secret"

    def test_unset_reference_is_empty(self) -> None:
        assert resolve_env("${MISSING}", {}) == ""

    def test_literal_passes_through(self) -> None:
        assert resolve_env("ghp_literal", {"ghp_literal": "x"}) == "ghp_literal"
        assert resolve_env(5, {}) == 5


class TestConfig:
    """Tests for Config.from_dict() and validation."""

    def test_defaults(self) -> None:
        config = Config.from_dict(base_config(), env={})

        repo = config.repositories["github"][0]
        assert repo.merge_strategy is MergeMethod.SQUASH
        assert repo.branch == "main"
        assert repo.min_approvals == 0
        assert config.behavior.concurrency == 5
        assert config.behavior.rate_limit.requests_per_second == 5.0
        assert config.behavior.rate_limit.burst == 10
        assert config.behavior.retry.max_attempts == 3
        assert not config.behavior.dry_run

    def test_full_repository_entry(self) -> None:
        config = Config.from_dict(
            base_config(
                repositories={
                    "github": [
                        {
                            "name": "owner/repo",
                            "merge_strategy": "REBASE",
                            "skip_labels": ["wip"],
                            "branch": "develop",
                            "require_checks": True,
                            "min_approvals": 2,
                            "delete_branches": True,
                            "auto_merge": True,
                        },
                        "owner/other",
                    ]
                }
            ),
            env={},
        )

        repo, other = config.repositories["github"]
        assert repo.merge_strategy is MergeMethod.REBASE
        assert repo.skip_labels == ["wip"]
        assert repo.branch == "develop"
        assert repo.require_checks
        assert repo.min_approvals == 2
        assert repo.delete_branches
        assert repo.auto_merge
        assert other.name == "owner/other"

    def test_token_from_env_reference(self) -> None:
        config = Config.from_dict(
            base_config(auth={"github": {"token": "${GH}"}}), env={"GH": "ghp_env"}
        )

        assert config.auth.github.token == "ghp_env"

    def test_token_env_fallback(self) -> None:
        config = Config.from_dict(
            base_config(auth={}), env={"GITHUB_TOKEN": "ghp_fallback"}
        )

        assert config.auth.github.token == "ghp_fallback"

    def test_gitlab_url_defaults_when_token_set(self) -> None:
        config = Config.from_dict(
            base_config(auth={"gitlab": {"token": "glpat-x"}}, repositories={}), env={}
        )

        assert config.auth.gitlab.url == DEFAULT_GITLAB_URL

    def test_behavior_durations(self) -> None:
        config = Config.from_dict(
            base_config(
                behavior={
                    "concurrency": 8,
                    "dry_run": True,
                    "rate_limit": {"requests_per_second": 2, "burst": 4, "timeout": "1m"},
                    "retry": {"max_attempts": 5, "backoff": "2s", "max_backoff": "1m"},
                }
            ),
            env={},
        )

        behavior = config.behavior
        assert behavior.concurrency == 8
        assert behavior.dry_run
        assert behavior.rate_limit.timeout == 60
        assert config.retry_config().max_attempts == 5
        assert config.retry_config().initial_backoff == 2
        assert config.retry_config().max_backoff == 60

        limiter_config = config.rate_limiter_config("github")
        assert limiter_config.name == "github"
        assert limiter_config.requests_per_second == 2
        assert limiter_config.burst == 4

    def test_explicit_zero_concurrency_is_kept(self) -> None:
        config = Config.from_dict(base_config(behavior={"concurrency": 0}), env={})

        assert config.behavior.concurrency == 0

    def test_max_age_seconds(self) -> None:
        config = Config.from_dict(
            base_config(pr_filters={"allowed_actors": ["a"], "max_age": "2h"}), env={}
        )

        assert config.pr_filters.max_age_seconds == 7200
        assert Config.from_dict(base_config(), env={}).pr_filters.max_age_seconds == 0

    def test_requires_allowed_actors(self) -> None:
        with pytest.raises(ConfigurationError, match="allowed_actors"):
            Config.from_dict(base_config(pr_filters={}), env={})

    def test_requires_some_credentials(self) -> None:
        with pytest.raises(ConfigurationError, match="authentication"):
            Config.from_dict(base_config(auth={}), env={})

    def test_repositories_need_matching_credentials(self) -> None:
        with pytest.raises(ConfigurationError, match="gitlab repositories configured"):
            Config.from_dict(
                base_config(repositories={"gitlab": [{"name": "group/project"}]}), env={}
            )

    def test_unsupported_provider(self) -> None:
        with pytest.raises(ConfigurationError, match="unsupported provider"):
            Config.from_dict(
                base_config(repositories={"gitea": [{"name": "a/b"}]}), env={}
            )

    def test_invalid_repository_name(self) -> None:
        with pytest.raises(ConfigurationError, match="invalid repository format"):
            Config.from_dict(
                base_config(repositories={"github": [{"name": "no-slash"}]}), env={}
            )

    def test_invalid_merge_strategy(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Config.from_dict(
                base_config(
                    repositories={"github": [{"name": "owner/repo", "merge_strategy": "fast-forward"}]}
                ),
                env={},
            )

        assert exc_info.value.message == (
            "invalid merge strategy 'fast-forward' for repository owner/repo in provider github"
        )

    def test_invalid_max_age(self) -> None:
        with pytest.raises(ConfigurationError, match="invalid duration"):
            Config.from_dict(
                base_config(pr_filters={"allowed_actors": ["a"], "max_age": "soon"}), env={}
            )

    def test_invalid_retry_attempts(self) -> None:
        config = Config.from_dict(base_config(), env={})
        config.behavior.retry.max_attempts = 0

        with pytest.raises(ConfigurationError, match="max_attempts"):
            config.validate()

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigurationError):
            Config.from_dict(["github"], env={})  # type: ignore[arg-type]

    def test_find_repository_is_case_insensitive(self) -> None:
        config = Config.from_dict(
            base_config(repositories={"github": [{"name": "Owner/Repo"}]}), env={}
        )

        assert config.find_repository("github", "owner/repo").name == "Owner/Repo"
        assert config.find_repository("github", "owner/other") is None
        assert config.find_repository("gitlab", "owner/repo") is None
