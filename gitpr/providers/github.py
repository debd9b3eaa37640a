"""GitHub provider (api.github.com and GitHub Enterprise)."""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from gitpr.context import Context
from gitpr.exceptions import CancelledError, ConfigurationError, ConflictError, GitPRError
from gitpr.providers.base import BaseProvider, is_before, parse_timestamp
from gitpr.ratelimit import RateLimiter
from gitpr.retry import RetryConfig
from gitpr.transport import HTTPTransport
from gitpr.types.pulls import Check, ListPROptions, MergeParams, PRStatus, PullRequest
from gitpr.types.repos import RateLimit, Repository, User, parse_repository_name

DEFAULT_BASE_URL = "https://api.github.com"


class GitHubProvider(BaseProvider):
    """
    GitHub REST API backend.

    Example:
        ```python
        provider = GitHubProvider(token=os.environ["GITHUB_TOKEN"])
        repo = provider.get_repository(ctx, "octocat", "hello-world")
        prs = provider.list_pull_requests(ctx, repo, ListPROptions())
        ```
    """

    provider_name = "github"

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the GitHub provider.

        Args:
            token: Personal access token or app installation token
            base_url: API root (default: https://api.github.com; for
                Enterprise e.g. https://ghe.example.com/api/v3)
            rate_limiter: Shared limiter for GitHub calls
            retry_config: Retry behavior for transient failures
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
            logger: Optional logger

        Raises:
            ConfigurationError: If no token is given
        """
        if not token:
            raise ConfigurationError("GitHub token is required")

        http = HTTPTransport(
            base_url=base_url or DEFAULT_BASE_URL,
            provider=self.provider_name,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
            transport=transport,
        )
        super().__init__(http, rate_limiter, retry_config, logger)

    def authenticate(self, ctx: Context) -> User:
        data = self._execute(ctx, "authenticate", lambda: self.transport.request("GET", "/user"))
        user = self._parse_user(data)
        self.logger.info("Authenticated as GitHub user: %s", user.login)
        return user

    def list_repositories(self, ctx: Context) -> list[Repository]:
        params = {"per_page": 100, "sort": "updated", "direction": "desc"}
        items = self._paginate(ctx, "list_repositories", "/user/repos", params)
        repos = [self._parse_repository(item) for item in items]
        self.logger.info("Found %d repositories", len(repos))
        return repos

    def get_repository(self, ctx: Context, owner: str, name: str) -> Repository:
        data = self._execute(
            ctx,
            "get_repository",
            lambda: self.transport.request("GET", f"/repos/{owner}/{name}"),
        )
        return self._parse_repository(data)

    def list_pull_requests(
        self, ctx: Context, repo: Repository, options: ListPROptions
    ) -> list[PullRequest]:
        """
        List pull requests of a repository.

        The pulls endpoint has no server-side date filter, so ``options.since``
        is applied to ``created_at`` after each page is fetched.
        """
        owner, name = parse_repository_name(repo.full_name)
        params = {
            "state": options.state,
            "sort": options.sort,
            "direction": options.direction,
            "per_page": options.per_page,
        }
        items = self._paginate(
            ctx, "list_pull_requests", f"/repos/{owner}/{name}/pulls", params
        )

        pulls = []
        for item in items:
            pr = self._parse_pull_request(item)
            if is_before(pr.created_at, options.since):
                continue
            pulls.append(pr)

        self.logger.debug("Found %d pull requests for %s", len(pulls), repo.full_name)
        return pulls

    def get_pull_request(
        self, ctx: Context, repo: Repository, number: int
    ) -> PullRequest:
        owner, name = parse_repository_name(repo.full_name)
        data = self._execute(
            ctx,
            "get_pull_request",
            lambda: self.transport.request("GET", f"/repos/{owner}/{name}/pulls/{number}"),
        )
        return self._parse_pull_request(data)

    def get_pr_status(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> PRStatus:
        """
        Get the combined commit status of the PR head.

        A head with no commit statuses at all is reported by GitHub as
        "pending"; it is treated as successful here since check runs are
        evaluated separately.
        """
        owner, name = parse_repository_name(repo.full_name)
        data = self._execute(
            ctx,
            "get_pr_status",
            lambda: self.transport.request(
                "GET", f"/repos/{owner}/{name}/commits/{pr.head_sha}/status"
            ),
        )
        state = data.get("state", "pending")
        if data.get("total_count", 1) == 0:
            state = "success"
        return PRStatus(
            state=state,
            description="Combined status",
            context="github/combined-status",
        )

    def get_checks(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> list[Check]:
        owner, name = parse_repository_name(repo.full_name)
        data = self._execute(
            ctx,
            "get_checks",
            lambda: self.transport.request(
                "GET",
                f"/repos/{owner}/{name}/commits/{pr.head_sha}/check-runs",
                params={"per_page": 100},
            ),
        )
        return [self._parse_check(run) for run in data.get("check_runs", [])]

    def merge_pull_request(
        self, ctx: Context, repo: Repository, pr: PullRequest, params: MergeParams
    ) -> str | None:
        """
        Merge a pull request and optionally delete its head branch.

        Branch deletion failures are logged and do not fail the merge.

        Raises:
            ConflictError: If GitHub refuses the merge (405/409)
        """
        owner, name = parse_repository_name(repo.full_name)
        body: dict[str, Any] = {"merge_method": params.method.value}
        if params.commit_title:
            body["commit_title"] = params.commit_title
        if params.commit_message:
            body["commit_message"] = params.commit_message
        if params.sha:
            body["sha"] = params.sha

        data = self._execute(
            ctx,
            "merge_pull_request",
            lambda: self.transport.request(
                "PUT", f"/repos/{owner}/{name}/pulls/{pr.number}/merge", json=body
            ),
        ) or {}

        if data.get("merged") is False:
            raise ConflictError(
                self.provider_name,
                "NOT_MERGED",
                data.get("message") or "pull request was not merged",
            )

        if params.delete_branch and pr.head_branch:
            self._delete_branch(ctx, owner, name, pr.head_branch)

        self.logger.info("Successfully merged PR #%d in %s", pr.number, repo.full_name)
        return data.get("sha")

    def get_approvals(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> int:
        """Count reviewers whose latest review is an approval."""
        owner, name = parse_repository_name(repo.full_name)
        reviews = self._paginate(
            ctx,
            "get_approvals",
            f"/repos/{owner}/{name}/pulls/{pr.number}/reviews",
            {"per_page": 100},
        )

        latest: dict[str, str] = {}
        for review in reviews:
            login = (review.get("user") or {}).get("login", "")
            state = review.get("state", "")
            if login and state != "COMMENTED":
                latest[login] = state
        return sum(1 for state in latest.values() if state == "APPROVED")

    def get_rate_limit(self, ctx: Context) -> RateLimit:
        data = self._execute(
            ctx, "get_rate_limit", lambda: self.transport.request("GET", "/rate_limit")
        )
        core = data.get("resources", {}).get("core", data.get("rate", {}))
        reset = core.get("reset")
        return RateLimit(
            limit=core.get("limit", 0),
            remaining=core.get("remaining", 0),
            reset_at=datetime.fromtimestamp(reset, tz=timezone.utc) if reset else None,
            used=core.get("used", 0),
        )

    def _delete_branch(self, ctx: Context, owner: str, name: str, branch: str) -> None:
        try:
            self._execute(
                ctx,
                "delete_branch",
                lambda: self.transport.request(
                    "DELETE", f"/repos/{owner}/{name}/git/refs/heads/{branch}"
                ),
            )
        except CancelledError:
            raise
        except GitPRError as e:
            self.logger.warning("Failed to delete branch %s: %s", branch, e)

    def _paginate(
        self, ctx: Context, operation: str, path: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Follow Link rel="next" headers, one rate-limited call per page."""
        items: list[dict[str, Any]] = []
        url: str | None = path
        page_params: dict[str, Any] | None = params

        while url:
            current_url, current_params = url, page_params
            response = self._execute(
                ctx,
                operation,
                lambda: self.transport.request_raw("GET", current_url, params=current_params),
            )
            items.extend(response.json() or [])
            url = response.links.get("next", {}).get("url")
            # the next link already carries the query string
            page_params = None

        return items

    def _parse_user(self, data: dict[str, Any] | None) -> User:
        data = data or {}
        return User(
            login=data.get("login", ""),
            id=str(data.get("id", "")),
            name=data.get("name"),
            email=data.get("email"),
            type=data.get("type", "User"),
        )

    def _parse_repository(self, data: dict[str, Any]) -> Repository:
        owner = data.get("owner") or {}
        return Repository(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            full_name=data.get("full_name", ""),
            owner=owner.get("login", ""),
            provider=self.provider_name,
            default_branch=data.get("default_branch") or "main",
            private=data.get("private", False),
            archived=data.get("archived", False),
            url=data.get("html_url", ""),
            clone_url=data.get("clone_url", ""),
            description=data.get("description"),
            updated_at=parse_timestamp(data.get("updated_at")),
            topics=list(data.get("topics") or []),
        )

    def _parse_pull_request(self, data: dict[str, Any]) -> PullRequest:
        state = data.get("state", "open")
        if state == "closed" and (data.get("merged") or data.get("merged_at")):
            state = "merged"

        head = data.get("head") or {}
        base = data.get("base") or {}
        return PullRequest(
            id=str(data.get("id", "")),
            number=data["number"],
            title=data.get("title", ""),
            body=data.get("body") or "",
            state=state,
            author=self._parse_user(data.get("user")),
            head_branch=head.get("ref", ""),
            base_branch=base.get("ref", ""),
            head_sha=head.get("sha", ""),
            labels=[label.get("name", "") for label in data.get("labels") or []],
            draft=data.get("draft", False),
            locked=data.get("locked", False),
            mergeable=data.get("mergeable"),
            mergeable_state=data.get("mergeable_state") or "",
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            merged_at=parse_timestamp(data.get("merged_at")),
            url=data.get("html_url", ""),
        )

    def _parse_check(self, data: dict[str, Any]) -> Check:
        return Check(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            status=data.get("status", ""),
            conclusion=data.get("conclusion") or "",
            started_at=parse_timestamp(data.get("started_at")),
            completed_at=parse_timestamp(data.get("completed_at")),
            url=data.get("details_url") or "",
        )


__all__ = ["GitHubProvider"]
