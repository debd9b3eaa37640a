"""
Configuration model.

Configuration arrives as an already-parsed mapping (for example the result
of loading a YAML file). ``Config.from_dict`` applies defaults, resolves
environment references for secrets and validates the result.

Example:
    ```python
    config = Config.from_dict(
        {
            "pr_filters": {"allowed_actors": ["dependabot[bot]"], "max_age": "30d"},
            "repositories": {"github": [{"name": "owner/repo", "require_checks": True}]},
            "auth": {"github": {"token": "${GITHUB_TOKEN}"}},
        }
    )
    ```
"""

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from gitpr.exceptions import ConfigurationError
from gitpr.ratelimit import RateLimiterConfig
from gitpr.retry import RetryConfig
from gitpr.types.pulls import MergeMethod
from gitpr.types.repos import parse_repository_name

PROVIDERS = ("github", "gitlab", "bitbucket")

DEFAULT_GITLAB_URL = "https://gitlab.com"

_ENV_REFERENCE = re.compile(r"^\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))$")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d|w|y)")

_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
    "w": 7 * 86400.0,
    "y": 365 * 86400.0,
}


def parse_duration(value: str | int | float | None) -> float:
    """
    Parse a duration into seconds.

    Accepts bare numbers (seconds) and unit strings such as "30s", "15m",
    "2h", "7d", "1w", "1y" or combinations like "1h30m".

    Raises:
        ConfigurationError: If the value cannot be parsed
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ConfigurationError(f"invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds using the largest whole unit ("30d", "2h", "90s")."""
    for unit in ("y", "w", "d", "h", "m"):
        size = _DURATION_UNITS[unit]
        if seconds >= size and seconds % size == 0:
            return f"{int(seconds // size)}{unit}"
    return f"{seconds:g}s"


def resolve_env(value: Any, env: Mapping[str, str] | None = None) -> Any:
    """Replace a "$VAR" or "${VAR}" string with the variable's value ("" if unset)."""
    if not isinstance(value, str):
        return value
    match = _ENV_REFERENCE.match(value.strip())
    if not match:
        return value
    env = os.environ if env is None else env
    return env.get(match.group(1) or match.group(2), "")


@dataclass
class PRFilters:
    """Global pull request filters."""

    allowed_actors: list[str] = field(default_factory=list)
    skip_labels: list[str] = field(default_factory=list)
    max_age: str = ""

    @property
    def max_age_seconds(self) -> float:
        return parse_duration(self.max_age)


@dataclass
class RepositoryConfig:
    """Per-repository merge policy."""

    name: str  # "owner/name"
    auto_merge: bool = False
    merge_strategy: MergeMethod = MergeMethod.SQUASH
    skip_labels: list[str] = field(default_factory=list)
    branch: str = "main"
    require_checks: bool = False
    min_approvals: int = 0
    delete_branches: bool = False


@dataclass
class GitHubAuth:
    token: str = ""
    base_url: str = ""


@dataclass
class GitLabAuth:
    token: str = ""
    url: str = ""


@dataclass
class BitbucketAuth:
    username: str = ""
    app_password: str = ""
    workspace: str = ""


@dataclass
class AuthConfig:
    """Credentials per provider."""

    github: GitHubAuth = field(default_factory=GitHubAuth)
    gitlab: GitLabAuth = field(default_factory=GitLabAuth)
    bitbucket: BitbucketAuth = field(default_factory=BitbucketAuth)

    def has_credentials(self, provider: str) -> bool:
        if provider == "github":
            return bool(self.github.token)
        if provider == "gitlab":
            return bool(self.gitlab.token)
        if provider == "bitbucket":
            return bool(self.bitbucket.username and self.bitbucket.app_password)
        return False


@dataclass
class RateLimitSettings:
    requests_per_second: float = 5.0
    burst: int = 10
    timeout: float = 30.0  # seconds


@dataclass
class RetrySettings:
    max_attempts: int = 3
    backoff: float = 1.0  # seconds
    max_backoff: float = 30.0  # seconds


@dataclass
class BehaviorConfig:
    """Execution behavior shared by every provider."""

    concurrency: int = 5
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    dry_run: bool = False
    require_approval: bool = False
    delete_branches: bool = False


@dataclass
class Config:
    """Complete, validated configuration."""

    pr_filters: PRFilters = field(default_factory=PRFilters)
    repositories: dict[str, list[RepositoryConfig]] = field(default_factory=dict)
    auth: AuthConfig = field(default_factory=AuthConfig)
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], env: Mapping[str, str] | None = None
    ) -> "Config":
        """
        Build a Config from a parsed mapping.

        Args:
            data: Parsed configuration (e.g., loaded from YAML)
            env: Environment used for secret references and fallbacks
                (default: os.environ)

        Returns:
            Validated Config

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        env = os.environ if env is None else env
        if not isinstance(data, Mapping):
            raise ConfigurationError("configuration must be a mapping")

        filters = _section(data, "pr_filters")
        config = cls(
            pr_filters=PRFilters(
                allowed_actors=_string_list(filters.get("allowed_actors"), "pr_filters.allowed_actors"),
                skip_labels=_string_list(filters.get("skip_labels"), "pr_filters.skip_labels"),
                max_age=str(filters.get("max_age") or ""),
            ),
            repositories=_parse_repositories(data.get("repositories") or {}),
            auth=_parse_auth(_section(data, "auth"), env),
            behavior=_parse_behavior(_section(data, "behavior")),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check business rules.

        Raises:
            ConfigurationError: On the first rule that fails
        """
        if not self.pr_filters.allowed_actors:
            raise ConfigurationError("pr_filters.allowed_actors must list at least one actor")
        parse_duration(self.pr_filters.max_age)

        if not any(self.auth.has_credentials(p) for p in PROVIDERS):
            raise ConfigurationError(
                "at least one provider must have authentication configured"
            )

        for provider, repos in self.repositories.items():
            if provider not in PROVIDERS:
                raise ConfigurationError(f"unsupported provider: {provider}")
            if repos and not self.auth.has_credentials(provider):
                raise ConfigurationError(
                    f"{provider} repositories configured but no {provider} credentials provided"
                )
            for repo in repos:
                try:
                    parse_repository_name(repo.name)
                except ValueError as e:
                    raise ConfigurationError(f"{provider}: {e}") from e

        if self.behavior.concurrency < 0:
            raise ConfigurationError("behavior.concurrency must not be negative")
        if self.behavior.retry.max_attempts < 1:
            raise ConfigurationError("behavior.retry.max_attempts must be at least 1")

    def find_repository(self, provider: str, full_name: str) -> RepositoryConfig | None:
        """Look up the policy for a repository (case-insensitive name match)."""
        wanted = full_name.lower()
        for repo in self.repositories.get(provider, []):
            if repo.name.lower() == wanted:
                return repo
        return None

    def retry_config(self) -> RetryConfig:
        retry = self.behavior.retry
        return RetryConfig(
            max_attempts=retry.max_attempts,
            initial_backoff=retry.backoff,
            max_backoff=retry.max_backoff,
        )

    def rate_limiter_config(self, name: str) -> RateLimiterConfig:
        limits = self.behavior.rate_limit
        return RateLimiterConfig(
            requests_per_second=limits.requests_per_second,
            burst=limits.burst,
            timeout=limits.timeout,
            name=name,
        )


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{key} must be a mapping")
    return value


def _string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, list):
        raise ConfigurationError(f"{key} must be a list")
    return [str(item) for item in value]


def _parse_repositories(data: Any) -> dict[str, list[RepositoryConfig]]:
    if not isinstance(data, Mapping):
        raise ConfigurationError("repositories must be a mapping of provider to list")

    result: dict[str, list[RepositoryConfig]] = {}
    for provider, entries in data.items():
        repos = []
        for entry in entries or []:
            if isinstance(entry, str):
                entry = {"name": entry}
            if not isinstance(entry, Mapping) or not entry.get("name"):
                raise ConfigurationError(f"{provider}: every repository needs a name")

            strategy = str(entry.get("merge_strategy") or "squash").lower()
            if strategy not in {m.value for m in MergeMethod}:
                raise ConfigurationError(
                    f"invalid merge strategy '{strategy}' for repository "
                    f"{entry['name']} in provider {provider}"
                )

            repos.append(
                RepositoryConfig(
                    name=str(entry["name"]),
                    auto_merge=bool(entry.get("auto_merge", False)),
                    merge_strategy=MergeMethod(strategy),
                    skip_labels=_string_list(entry.get("skip_labels"), f"{entry['name']}.skip_labels"),
                    branch=str(entry.get("branch") or "main"),
                    require_checks=bool(entry.get("require_checks", False)),
                    min_approvals=int(entry.get("min_approvals") or 0),
                    delete_branches=bool(entry.get("delete_branches", False)),
                )
            )
        result[str(provider).lower()] = repos
    return result


def _parse_auth(data: Mapping[str, Any], env: Mapping[str, str]) -> AuthConfig:
    def value(section: str, key: str, env_name: str) -> str:
        raw = (data.get(section) or {}).get(key, "")
        return str(resolve_env(raw, env) or env.get(env_name, ""))

    gitlab_token = value("gitlab", "token", "GITLAB_TOKEN")
    gitlab_url = value("gitlab", "url", "GITLAB_URL")
    return AuthConfig(
        github=GitHubAuth(
            token=value("github", "token", "GITHUB_TOKEN"),
            base_url=value("github", "base_url", "GITHUB_BASE_URL"),
        ),
        gitlab=GitLabAuth(
            token=gitlab_token,
            url=gitlab_url or (DEFAULT_GITLAB_URL if gitlab_token else ""),
        ),
        bitbucket=BitbucketAuth(
            username=value("bitbucket", "username", "BITBUCKET_USERNAME"),
            app_password=value("bitbucket", "app_password", "BITBUCKET_APP_PASSWORD"),
            workspace=value("bitbucket", "workspace", "BITBUCKET_WORKSPACE"),
        ),
    )


def _parse_behavior(data: Mapping[str, Any]) -> BehaviorConfig:
    rate = data.get("rate_limit") or {}
    retry = data.get("retry") or {}
    defaults = BehaviorConfig()
    concurrency = data.get("concurrency")

    return BehaviorConfig(
        concurrency=defaults.concurrency if concurrency is None else int(concurrency),
        rate_limit=RateLimitSettings(
            requests_per_second=float(
                rate.get("requests_per_second") or defaults.rate_limit.requests_per_second
            ),
            burst=int(rate.get("burst") or defaults.rate_limit.burst),
            timeout=parse_duration(rate.get("timeout")) or defaults.rate_limit.timeout,
        ),
        retry=RetrySettings(
            max_attempts=int(retry.get("max_attempts") or defaults.retry.max_attempts),
            backoff=parse_duration(retry.get("backoff")) or defaults.retry.backoff,
            max_backoff=parse_duration(retry.get("max_backoff")) or defaults.retry.max_backoff,
        ),
        dry_run=bool(data.get("dry_run", False)),
        require_approval=bool(data.get("require_approval", False)),
        delete_branches=bool(data.get("delete_branches", False)),
    )


__all__ = [
    "AuthConfig",
    "BehaviorConfig",
    "BitbucketAuth",
    "Config",
    "GitHubAuth",
    "GitLabAuth",
    "PRFilters",
    "RateLimitSettings",
    "RepositoryConfig",
    "RetrySettings",
    "format_duration",
    "parse_duration",
    "resolve_env",
]
