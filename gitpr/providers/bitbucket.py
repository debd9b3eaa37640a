"""Bitbucket Cloud provider."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from gitpr.context import Context
from gitpr.exceptions import CancelledError, ConfigurationError, GitPRError
from gitpr.providers.base import BaseProvider, is_before, parse_timestamp
from gitpr.ratelimit import RateLimiter, RateLimiterConfig
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

BASE_URL = "https://api.bitbucket.org/2.0"

# Bitbucket does not expose the remaining quota; report a conservative estimate.
_ESTIMATED_LIMIT = 1000

_PAGE_LENGTH = 50

_PR_STATES = {
    "open": ["OPEN"],
    "closed": ["MERGED", "DECLINED", "SUPERSEDED"],
    "merged": ["MERGED"],
    "all": ["OPEN", "MERGED", "DECLINED", "SUPERSEDED"],
}

_STATUS_STATES = {
    "SUCCESSFUL": "success",
    "FAILED": "failure",
    "STOPPED": "error",
    "INPROGRESS": "pending",
}

_CHECK_CONCLUSIONS = {
    "SUCCESSFUL": "success",
    "FAILED": "failure",
    "STOPPED": "cancelled",
}


class BitbucketProvider(BaseProvider):
    """
    Bitbucket Cloud REST API (2.0) backend.

    Bitbucket is stricter about request rates than the other hosts, so the
    default limiter allows 1 request per second with a burst of 5.
    """

    provider_name = "bitbucket"

    def __init__(
        self,
        username: str,
        app_password: str,
        workspace: str = "",
        base_url: str = BASE_URL,
        rate_limiter: RateLimiter | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the Bitbucket provider.

        Args:
            username: Bitbucket username
            app_password: App password with repository and pull request scopes
            workspace: Workspace to list repositories from (default: the user's own)
            base_url: API root
            rate_limiter: Shared limiter for Bitbucket calls
            retry_config: Retry behavior for transient failures
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
            logger: Optional logger

        Raises:
            ConfigurationError: If username or app password is missing
        """
        if not username or not app_password:
            raise ConfigurationError("bitbucket username and app password are required")

        self.username = username
        self.workspace = workspace

        http = HTTPTransport(
            base_url=base_url,
            provider=self.provider_name,
            auth=(username, app_password),
            timeout=timeout,
            transport=transport,
        )
        super().__init__(
            http,
            rate_limiter
            or RateLimiter(
                RateLimiterConfig(requests_per_second=1.0, burst=5, name=self.provider_name)
            ),
            retry_config,
            logger,
        )

    def authenticate(self, ctx: Context) -> User:
        data = self._execute(ctx, "authenticate", lambda: self.transport.request("GET", "/user"))
        user = self._parse_user(data)
        self.logger.info("Authenticated as Bitbucket user: %s", user.login)
        return user

    def list_repositories(self, ctx: Context) -> list[Repository]:
        owner = self.workspace or self.username
        items = self._paginate(
            ctx, "list_repositories", f"/repositories/{owner}", {"pagelen": _PAGE_LENGTH}
        )
        repos = [self._parse_repository(item) for item in items]
        self.logger.info("Found %d repositories", len(repos))
        return repos

    def get_repository(self, ctx: Context, owner: str, name: str) -> Repository:
        data = self._execute(
            ctx,
            "get_repository",
            lambda: self.transport.request("GET", f"/repositories/{owner}/{name}"),
        )
        return self._parse_repository(data)

    def list_pull_requests(
        self, ctx: Context, repo: Repository, options: ListPROptions
    ) -> list[PullRequest]:
        owner, name = parse_repository_name(repo.full_name)
        params: dict[str, Any] = {
            "state": _PR_STATES.get(options.state, [options.state.upper()]),
            "pagelen": _PAGE_LENGTH,
        }
        items = self._paginate(
            ctx,
            "list_pull_requests",
            f"/repositories/{owner}/{name}/pullrequests",
            params,
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
        return self._parse_pull_request(self._fetch_pull_request(ctx, repo, number))

    def get_pr_status(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> PRStatus:
        """Report the most recent build status of the head; success when there is none."""
        statuses = self._statuses(ctx, repo, pr, "get_pr_status")

        state = "success"
        if statuses:
            state = _STATUS_STATES.get(statuses[0].get("state", "").upper(), "pending")
        return PRStatus(
            state=state,
            description="Combined status",
            context="bitbucket/combined-status",
        )

    def get_checks(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> list[Check]:
        return [
            self._parse_status_check(status)
            for status in self._statuses(ctx, repo, pr, "get_checks")
        ]

    def merge_pull_request(
        self, ctx: Context, repo: Repository, pr: PullRequest, params: MergeParams
    ) -> str | None:
        """
        Merge a pull request.

        Bitbucket offers no rebase strategy here, so rebase falls back to
        squash. Branch deletion failures are logged and do not fail the merge.
        """
        owner, name = parse_repository_name(repo.full_name)

        strategy = "merge_commit"
        if params.method is MergeMethod.SQUASH:
            strategy = "squash"
        elif params.method is MergeMethod.REBASE:
            strategy = "squash"
            self.logger.warning("Rebase merge not supported in Bitbucket, using squash")

        message = params.commit_title
        if params.commit_message:
            message = f"{message}\n\n{params.commit_message}" if message else params.commit_message

        body: dict[str, Any] = {"type": "pullrequest", "merge_strategy": strategy}
        if message:
            body["message"] = message
        if params.delete_branch:
            body["close_source_branch"] = True

        data = self._execute(
            ctx,
            "merge_pull_request",
            lambda: self.transport.request(
                "POST",
                f"/repositories/{owner}/{name}/pullrequests/{pr.number}/merge",
                json=body,
            ),
        ) or {}

        if params.delete_branch and pr.head_branch:
            self._delete_branch(ctx, owner, name, pr.head_branch)

        self.logger.info("Successfully merged PR #%d in %s", pr.number, repo.full_name)
        return (data.get("merge_commit") or {}).get("hash")

    def get_approvals(
        self, ctx: Context, repo: Repository, pr: PullRequest
    ) -> int:
        data = self._fetch_pull_request(ctx, repo, pr.number, operation="get_approvals")
        return sum(1 for p in data.get("participants") or [] if p.get("approved"))

    def get_rate_limit(self, ctx: Context) -> RateLimit:
        return RateLimit(
            limit=_ESTIMATED_LIMIT,
            remaining=_ESTIMATED_LIMIT - 1,
            reset_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    def _fetch_pull_request(
        self,
        ctx: Context,
        repo: Repository,
        number: int,
        operation: str = "get_pull_request",
    ) -> dict[str, Any]:
        owner, name = parse_repository_name(repo.full_name)
        return self._execute(
            ctx,
            operation,
            lambda: self.transport.request(
                "GET", f"/repositories/{owner}/{name}/pullrequests/{number}"
            ),
        )

    def _statuses(
        self, ctx: Context, repo: Repository, pr: PullRequest, operation: str
    ) -> list[dict[str, Any]]:
        owner, name = parse_repository_name(repo.full_name)
        return self._paginate(
            ctx,
            operation,
            f"/repositories/{owner}/{name}/commit/{pr.head_sha}/statuses",
            {"pagelen": _PAGE_LENGTH},
        )

    def _delete_branch(self, ctx: Context, owner: str, name: str, branch: str) -> None:
        try:
            self._execute(
                ctx,
                "delete_branch",
                lambda: self.transport.request(
                    "DELETE", f"/repositories/{owner}/{name}/refs/branches/{branch}"
                ),
            )
        except CancelledError:
            raise
        except GitPRError as e:
            # close_source_branch usually removed it already
            self.logger.debug("Branch %s not deleted: %s", branch, e)

    def _paginate(
        self, ctx: Context, operation: str, path: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Follow the "next" links of paged responses, one rate-limited call per page."""
        items: list[dict[str, Any]] = []
        url: str | None = path
        page_params: dict[str, Any] | None = params

        while url:
            current_url, current_params = url, page_params
            data = self._execute(
                ctx,
                operation,
                lambda: self.transport.request("GET", current_url, params=current_params),
            ) or {}
            items.extend(data.get("values") or [])
            url = data.get("next")
            page_params = None

        return items

    def _parse_user(self, data: dict[str, Any] | None) -> User:
        data = data or {}
        return User(
            login=data.get("nickname") or data.get("username") or data.get("display_name", ""),
            id=data.get("uuid") or data.get("account_id", ""),
            name=data.get("display_name"),
            type="Bot" if data.get("type") == "app_user" else "User",
        )

    def _parse_repository(self, data: dict[str, Any]) -> Repository:
        full_name = data.get("full_name", "")
        links = data.get("links") or {}
        clone_url = ""
        for link in links.get("clone") or []:
            if link.get("name") == "https":
                clone_url = link.get("href", "")
        return Repository(
            id=data.get("uuid", ""),
            name=data.get("slug") or data.get("name", ""),
            full_name=full_name,
            owner=(data.get("workspace") or {}).get("slug") or full_name.partition("/")[0],
            provider=self.provider_name,
            default_branch=(data.get("mainbranch") or {}).get("name") or "main",
            private=data.get("is_private", False),
            url=(links.get("html") or {}).get("href", ""),
            clone_url=clone_url,
            description=data.get("description"),
            updated_at=parse_timestamp(data.get("updated_on")),
        )

    def _parse_pull_request(self, data: dict[str, Any]) -> PullRequest:
        raw_state = (data.get("state") or "OPEN").upper()
        if raw_state == "MERGED":
            state = "merged"
        elif raw_state in ("DECLINED", "SUPERSEDED"):
            state = "closed"
        else:
            state = "open"

        source = data.get("source") or {}
        destination = data.get("destination") or {}
        return PullRequest(
            id=str(data.get("id", "")),
            number=data["id"],
            title=data.get("title", ""),
            body=data.get("description") or "",
            state=state,
            author=self._parse_user(data.get("author")),
            head_branch=(source.get("branch") or {}).get("name", ""),
            base_branch=(destination.get("branch") or {}).get("name", ""),
            head_sha=(source.get("commit") or {}).get("hash", ""),
            # Bitbucket has no labels and reports conflicts only at merge time
            labels=[],
            draft=data.get("draft", False),
            mergeable=True if state == "open" else None,
            created_at=parse_timestamp(data.get("created_on")),
            updated_at=parse_timestamp(data.get("updated_on")),
            url=((data.get("links") or {}).get("html") or {}).get("href", ""),
        )

    def _parse_status_check(self, data: dict[str, Any]) -> Check:
        state = (data.get("state") or "").upper()
        if state in _CHECK_CONCLUSIONS:
            status, conclusion = "completed", _CHECK_CONCLUSIONS[state]
        elif state == "INPROGRESS":
            status, conclusion = "in_progress", ""
        else:
            status, conclusion = "queued", ""

        return Check(
            id=data.get("key") or data.get("uuid", ""),
            name=data.get("name") or data.get("key", ""),
            status=status,
            conclusion=conclusion,
            started_at=parse_timestamp(data.get("created_on")),
            completed_at=parse_timestamp(data.get("updated_on"))
            if status == "completed"
            else None,
            url=data.get("url", ""),
        )


__all__ = ["BitbucketProvider"]
