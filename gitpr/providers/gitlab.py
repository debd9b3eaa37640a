"""GitLab provider (gitlab.com and self-managed instances)."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

import httpx

from gitpr.context import Context
from gitpr.exceptions import ConfigurationError
from gitpr.providers.base import BaseProvider, parse_timestamp
from gitpr.ratelimit import RateLimiter
from gitpr.retry import RetryConfig
from gitpr.transport import HTTPTransport
from gitpr.types.pulls import (
    Check,
    ListPROptions,
    MergeMethod,
    MergeParams,
    PRStatus,
    PullRequest,
)
from gitpr.types.repos import RateLimit, Repository, User, parse_repository_name

DEFAULT_URL = "https://gitlab.com"

# GitLab has no per-token quota endpoint; report the documented default.
_ESTIMATED_LIMIT = 5000

_MR_STATES = {"open": "opened", "closed": "closed", "merged": "merged", "all": "all"}

_STATUS_STATES = {
    "success": "success",
    "failed": "failure",
    "canceled": "error",
    "skipped": "success",
}

_PIPELINE_CONCLUSIONS = {
    "success": "success",
    "failed": "failure",
    "canceled": "cancelled",
    "skipped": "skipped",
}


class GitLabProvider(BaseProvider):
    """GitLab REST API (v4) backend. Merge requests are exposed as pull requests."""

    provider_name = "gitlab"

    def __init__(
        self,
        token: str,
        url: str | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the GitLab provider.

        Args:
            token: Personal, project or group access token
            url: Instance URL (default: https://gitlab.com)
            rate_limiter: Shared limiter for GitLab calls
            retry_config: Retry behavior for transient failures
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
            logger: Optional logger

        Raises:
            ConfigurationError: If no token is given
        """
        if not token:
            raise ConfigurationError("GitLab token is required")

        base = (url or DEFAULT_URL).rstrip("/")
        if not base.endswith("/api/v4"):
            base = f"{base}/api/v4"

        http = HTTPTransport(
            base_url=base,
            provider=self.provider_name,
            headers={"PRIVATE-TOKEN": token},
            timeout=timeout,
            transport=transport,
        )
        super().__init__(http, rate_limiter, retry_config, logger)

    def authenticate(self, ctx: Context) -> User:
        data = self._execute(ctx, "authenticate", lambda: self.transport.request("GET", "/user"))
        user = self._parse_user(data)
        self.logger.info("Authenticated as GitLab user: %s", user.login)
        return user

    def list_repositories(self, ctx: Context) -> list[Repository]:
        params = {
            "per_page": 100,
            "order_by": "updated_at",
            "sort": "desc",
            "membership": "true",
        }
        items = self._paginate(ctx, "list_repositories", "/projects", params)
        repos = [self._parse_project(item) for item in items]
        self.logger.info("Found %d repositories", len(repos))
        return repos

    def get_repository(self, ctx: Context, owner: str, name: str) -> Repository:
        path = _project_path(f"{owner}/{name}")
        data = self._execute(
            ctx, "get_repository", lambda: self.transport.request("GET", path)
        )
        return self._parse_project(data)

    def list_pull_requests(
        self, ctx: Context, repo: Repository, options: ListPROptions
    ) -> list[PullRequest]:
        params: dict[str, Any] = {
            "state": _MR_STATES.get(options.state, options.state),
            "order_by": "created_at" if options.sort == "created" else "updated_at",
            "sort": options.direction,
            "per_page": options.per_page,
        }
        if options.since is not None:
            params["created_after"] = options.since.isoformat()

        items = self._paginate(
            ctx,
            "list_pull_requests",
            f"{_project_path(repo.full_name)}/merge_requests",
            params,
        )
        pulls = [self._parse_merge_request(item) for item in items]
        self.logger.debug("Found %d merge requests for %s", len(pulls), repo.full_name)
        return pulls

    def get_pull_request(
        self, ctx: Context, repo: Repository, number: int
    ) -> PullRequest:
        path = f"{_project_path(repo.full_name)}/merge_requests/{number}"
        data = self._execute(
            ctx, "get_pull_request", lambda: self.transport.request("GET", path)
        )
        return self._parse_merge_request(data)

    def get_pr_status(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> PRStatus:
        """Report the most recent commit status of the head; success when there is none."""
        path = f"{_project_path(repo.full_name)}/repository/commits/{pr.head_sha}/statuses"
        statuses = self._execute(
            ctx, "get_pr_status", lambda: self.transport.request("GET", path)
        ) or []

        state = "success"
        if statuses:
            state = _STATUS_STATES.get(statuses[0].get("status", ""), "pending")
        return PRStatus(
            state=state,
            description="Combined status",
            context="gitlab/combined-status",
        )

    def get_checks(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> list[Check]:
        path = f"{_project_path(repo.full_name)}/pipelines"
        pipelines = self._execute(
            ctx,
            "get_checks",
            lambda: self.transport.request("GET", path, params={"sha": pr.head_sha}),
        ) or []
        return [self._parse_pipeline(pipeline) for pipeline in pipelines]

    def merge_pull_request(
        self, ctx: Context, repo: Repository, pr: PullRequest, params: MergeParams
    ) -> str | None:
        """
        Accept a merge request.

        GitLab has no rebase-on-accept option, so rebase falls back to a
        merge commit. Source branch removal is requested in the same call.
        """
        body: dict[str, Any] = {
            "should_remove_source_branch": params.delete_branch,
        }
        if params.commit_title:
            body["merge_commit_message"] = params.commit_title
        if params.sha:
            body["sha"] = params.sha

        if params.method is MergeMethod.SQUASH:
            body["squash"] = True
            if params.commit_title:
                body["squash_commit_message"] = params.commit_title
        elif params.method is MergeMethod.REBASE:
            self.logger.warning("Rebase merge not directly supported in GitLab, using merge")

        path = f"{_project_path(repo.full_name)}/merge_requests/{pr.number}/merge"
        data = self._execute(
            ctx,
            "merge_pull_request",
            lambda: self.transport.request("PUT", path, json=body),
        ) or {}

        self.logger.info("Successfully merged MR #%d in %s", pr.number, repo.full_name)
        return data.get("merge_commit_sha") or data.get("squash_commit_sha")

    def get_approvals(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> int:
        path = f"{_project_path(repo.full_name)}/merge_requests/{pr.number}/approvals"
        data = self._execute(
            ctx, "get_approvals", lambda: self.transport.request("GET", path)
        ) or {}
        return len(data.get("approved_by") or [])

    def get_rate_limit(self, ctx: Context) -> RateLimit:
        return RateLimit(
            limit=_ESTIMATED_LIMIT,
            remaining=_ESTIMATED_LIMIT - 1,
            reset_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    def _paginate(
        self, ctx: Context, operation: str, path: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Follow X-Next-Page headers, one rate-limited call per page."""
        items: list[dict[str, Any]] = []
        page = "1"

        while page:
            page_params = {**params, "page": page}
            response = self._execute(
                ctx,
                operation,
                lambda: self.transport.request_raw("GET", path, params=page_params),
            )
            items.extend(response.json() or [])
            page = response.headers.get("X-Next-Page", "")

        return items

    def _parse_user(self, data: dict[str, Any] | None) -> User:
        if not data:
            return User(login="unknown", id="0", name="Unknown")
        return User(
            login=data.get("username", ""),
            id=str(data.get("id", "")),
            name=data.get("name"),
            email=data.get("email"),
            type="Bot" if data.get("bot") else "User",
        )

    def _parse_project(self, data: dict[str, Any]) -> Repository:
        full_name = data.get("path_with_namespace", "")
        namespace = data.get("namespace") or {}
        return Repository(
            id=str(data.get("id", "")),
            name=data.get("path") or data.get("name", ""),
            full_name=full_name,
            owner=namespace.get("full_path") or full_name.rpartition("/")[0],
            provider=self.provider_name,
            default_branch=data.get("default_branch") or "main",
            private=data.get("visibility") == "private",
            archived=data.get("archived", False),
            url=data.get("web_url", ""),
            clone_url=data.get("http_url_to_repo", ""),
            description=data.get("description"),
            updated_at=parse_timestamp(data.get("last_activity_at")),
            topics=list(data.get("topics") or []),
        )

    def _parse_merge_request(self, data: dict[str, Any]) -> PullRequest:
        state = data.get("state", "opened")
        if state not in ("merged", "closed"):
            state = "open"

        detailed = data.get("detailed_merge_status") or ""
        mergeable: bool | None = None
        if detailed == "mergeable":
            mergeable = True
        elif detailed == "not_mergeable" or data.get("has_conflicts"):
            mergeable = False

        labels = []
        for label in data.get("labels") or []:
            labels.append(label.get("name", "") if isinstance(label, dict) else label)

        return PullRequest(
            id=str(data.get("id", data.get("iid", ""))),
            number=data["iid"],
            title=data.get("title", ""),
            body=data.get("description") or "",
            state=state,
            author=self._parse_user(data.get("author")),
            head_branch=data.get("source_branch", ""),
            base_branch=data.get("target_branch", ""),
            head_sha=data.get("sha") or "",
            labels=labels,
            draft=bool(data.get("draft") or data.get("work_in_progress")),
            locked=data.get("discussion_locked") or False,
            mergeable=mergeable,
            mergeable_state=detailed,
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            merged_at=parse_timestamp(data.get("merged_at")),
            url=data.get("web_url", ""),
        )

    def _parse_pipeline(self, data: dict[str, Any]) -> Check:
        status = data.get("status", "")
        if status in _PIPELINE_CONCLUSIONS:
            check_status, conclusion = "completed", _PIPELINE_CONCLUSIONS[status]
        elif status == "running":
            check_status, conclusion = "in_progress", ""
        else:
            check_status, conclusion = "queued", ""

        pipeline_id = data.get("id", "")
        return Check(
            id=str(pipeline_id),
            name=f"Pipeline #{pipeline_id}",
            status=check_status,
            conclusion=conclusion,
            started_at=parse_timestamp(data.get("created_at")),
            completed_at=parse_timestamp(data.get("updated_at"))
            if check_status == "completed"
            else None,
            url=data.get("web_url", ""),
        )


def _project_path(full_name: str) -> str:
    parse_repository_name(full_name)
    return f"/projects/{quote(full_name, safe='')}"


__all__ = ["GitLabProvider"]
