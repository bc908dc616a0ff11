"""GitHub REST client scoped to the pull request under review."""

import asyncio
import base64
import binascii
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import httpx
import structlog

from pr_reviewer.core.config import COMMENT_MARKERS, Settings
from pr_reviewer.core.exceptions import (
    GitHubAuthenticationError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from pr_reviewer.services.github.models import (
    CommentLocation,
    ExistingComment,
    ExistingComments,
    FileChange,
    FileStatus,
    PRContext,
    PullRequest,
    RateLimit,
)
from pr_reviewer.services.rules.parser import match_any

logger = structlog.get_logger()

TEXT_ACCEPT_TYPES = ("application/vnd.github.v3.diff", "application/vnd.github.v3.raw")
PER_PAGE = 100


class GitHubClient:
    """Client for interacting with GitHub API."""

    def __init__(
        self,
        token: str,
        context: PRContext,
        base_url: str = "https://api.github.com",
        rate_limit_delay_ms: int = 1000,
    ) -> None:
        self.token = token
        self.context = context
        self.base_url = base_url
        self.rate_limit_delay = rate_limit_delay_ms / 1000
        self._client: httpx.AsyncClient | None = None
        self._last_request_at: float | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github.v3+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=30.0,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _apply_rate_limit(self) -> None:
        """Keep consecutive API calls at least ``rate_limit_delay`` apart."""
        now = time.monotonic()
        if self._last_request_at is not None:
            wait = self.rate_limit_delay - (now - self._last_request_at)
            if wait > 0:
                await asyncio.sleep(wait)
        self._last_request_at = time.monotonic()

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> dict[str, Any] | list[Any] | str | None:
        """Make an authenticated request to GitHub API."""
        await self._apply_rate_limit()
        client = await self._get_client()

        logger.debug("GitHub API request", method=method, endpoint=endpoint)

        try:
            response = await client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub request failed: {e}", details={"endpoint": endpoint}) from e

        if response.status_code == 401:
            raise GitHubAuthenticationError("Invalid GitHub token")

        if response.status_code == 403:
            if "rate limit" in response.text.lower():
                reset_at = int(response.headers.get("X-RateLimit-Reset", 0))
                raise GitHubRateLimitError(reset_at=reset_at)
            raise GitHubAuthenticationError("Access forbidden")

        if response.status_code == 404:
            raise GitHubNotFoundError(f"Resource not found: {endpoint}")

        if response.status_code >= 400:
            raise GitHubError(
                f"GitHub API error: {response.status_code}",
                details={"response": response.text},
            )

        if response.status_code == 204:
            return None

        headers = kwargs.get("headers", {})
        if isinstance(headers, dict) and headers.get("Accept", "") in TEXT_ACCEPT_TYPES:
            return response.text

        result: dict[str, Any] | list[Any] = response.json()
        return result

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.context.owner}/{self.context.repo}"

    async def _paginate(self, path: str) -> list[dict[str, Any]]:
        """Fetch every page of a list endpoint."""
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            data = await self._request("GET", path, params={"per_page": PER_PAGE, "page": page})
            if not isinstance(data, list):
                raise GitHubError("Unexpected response format")
            items.extend(data)
            if len(data) < PER_PAGE:
                return items
            page += 1

    # -------------------------------------------------------------------------
    # Pull request
    # -------------------------------------------------------------------------

    async def get_pull_request(self) -> PullRequest:
        """Fetch pull request details."""
        data = await self._request("GET", f"{self._repo_path}/pulls/{self.context.pull_number}")

        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")

        return PullRequest(
            id=data["id"],
            number=data["number"],
            title=data["title"],
            body=data.get("body"),
            state=data["state"],
            html_url=data["html_url"],
            user=data["user"],
            head_sha=data["head"]["sha"],
            base_sha=data["base"]["sha"],
            head_ref=data["head"]["ref"],
            base_ref=data["base"]["ref"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            merged_at=data.get("merged_at"),
        )

    async def get_pr_changes(self, settings: Settings) -> list[FileChange]:
        """
        List the PR's changed files that pass the include/exclude filters.

        When the run targets an explicit PR number the context's head and
        base SHAs are refreshed from the PR itself.
        """
        pr = await self.get_pull_request()
        if settings.pr_number:
            self.context.sha = pr.head_sha
            self.context.base_sha = pr.base_sha

        files = await self._paginate(f"{self._repo_path}/pulls/{self.context.pull_number}/files")

        changes = []
        for file_data in files:
            filename = file_data["filename"]
            if not self.should_include_file(filename, settings):
                continue
            changes.append(
                FileChange(
                    filename=filename,
                    status=FileStatus(file_data["status"]),
                    additions=file_data.get("additions", 0),
                    deletions=file_data.get("deletions", 0),
                    changes=file_data.get("changes", 0),
                    patch=file_data.get("patch"),
                    previous_filename=file_data.get("previous_filename"),
                )
            )

        logger.info(
            "Fetched PR changes",
            total_files=len(files),
            matching_files=len(changes),
            max_files=settings.max_files,
        )
        return changes[: settings.max_files]

    @staticmethod
    def should_include_file(filename: str, settings: Settings) -> bool:
        """Exclude patterns win over include patterns."""
        if match_any(filename, settings.exclude_patterns):
            return False
        return match_any(filename, settings.include_patterns)

    async def get_file_content(self, path: str, ref: str | None = None) -> str | None:
        """Fetch and decode a file; ``None`` for new, binary or unreadable files."""
        try:
            data = await self._request(
                "GET",
                f"{self._repo_path}/contents/{path}",
                params={"ref": ref or self.context.sha},
            )
        except GitHubError as e:
            logger.debug("Could not fetch file content", path=path, error=e.message)
            return None

        if not isinstance(data, dict) or data.get("type") != "file":
            return None

        content = data.get("content", "")
        if data.get("encoding") != "base64":
            return str(content)
        try:
            return base64.b64decode(content).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.debug("File content is not UTF-8 text", path=path)
            return None

    async def get_repository_info(self) -> dict[str, Any]:
        data = await self._request("GET", self._repo_path)
        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")
        return data

    # -------------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------------

    async def get_existing_bot_comments(self) -> ExistingComments:
        """Find the summary, architectural and inline comments this bot posted."""
        try:
            issue_comments = await self._paginate(
                f"{self._repo_path}/issues/{self.context.pull_number}/comments"
            )
            review_comments = await self._paginate(
                f"{self._repo_path}/pulls/{self.context.pull_number}/comments"
            )
        except GitHubError as e:
            logger.warning("Could not fetch existing comments", error=e.message)
            return ExistingComments()

        bot_id = COMMENT_MARKERS["BOT_IDENTIFIER"]
        bot_issue_comments = [c for c in issue_comments if bot_id in (c.get("body") or "")]
        bot_review_comments = [c for c in review_comments if bot_id in (c.get("body") or "")]

        summary = next(
            (
                ExistingComment(id=c["id"], body=c["body"])
                for c in bot_issue_comments
                if COMMENT_MARKERS["SUMMARY_MARKER"] in c["body"]
                or "AI PR Review Summary" in c["body"]
            ),
            None,
        )
        architectural = next(
            (
                ExistingComment(id=c["id"], body=c["body"])
                for c in bot_issue_comments
                if COMMENT_MARKERS["ARCHITECTURAL_MARKER"] in c["body"]
                or "## 🏗️ Architectural Review" in c["body"]
            ),
            None,
        )

        # An older run may have posted the architectural review as the summary
        if summary and architectural and summary.id == architectural.id:
            logger.info("Architectural comment doubles as summary", comment_id=summary.id)
            summary = None

        inline = [
            ExistingComment(
                id=c["id"],
                body=c["body"],
                path=c.get("path") or "",
                line=c.get("line") or c.get("original_line") or 0,
                side=c.get("side") or "RIGHT",
            )
            for c in bot_review_comments
            if COMMENT_MARKERS["INLINE_MARKER"] in c["body"] or "Code Review Finding" in c["body"]
        ]

        logger.debug(
            "Found existing bot comments",
            summary_id=summary.id if summary else None,
            architectural_id=architectural.id if architectural else None,
            inline_count=len(inline),
        )
        return ExistingComments(
            summary_comment=summary,
            architectural_comment=architectural,
            inline_comments=inline,
        )

    @staticmethod
    def _with_markers(marker: str, body: str) -> str:
        return f"{COMMENT_MARKERS['BOT_IDENTIFIER']}\n{COMMENT_MARKERS[marker]}\n\n{body}"

    async def _upsert_issue_comment(
        self, body: str, existing_id: int | None, kind: str
    ) -> dict[str, Any]:
        try:
            if existing_id:
                data = await self._request(
                    "PATCH",
                    f"{self._repo_path}/issues/comments/{existing_id}",
                    json={"body": body},
                )
                logger.info("Updated existing comment", kind=kind, comment_id=existing_id)
            else:
                data = await self._request(
                    "POST",
                    f"{self._repo_path}/issues/{self.context.pull_number}/comments",
                    json={"body": body},
                )
                logger.info("Created new comment", kind=kind)
        except GitHubError as e:
            raise GitHubError(f"Failed to post {kind} comment: {e.message}", e.details) from e

        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")
        return data

    async def post_summary_comment(
        self, body: str, existing_id: int | None = None
    ) -> dict[str, Any]:
        return await self._upsert_issue_comment(
            self._with_markers("SUMMARY_MARKER", body), existing_id, "summary"
        )

    async def post_architectural_comment(
        self, body: str, existing_id: int | None = None
    ) -> dict[str, Any]:
        return await self._upsert_issue_comment(
            self._with_markers("ARCHITECTURAL_MARKER", body), existing_id, "architectural"
        )

    async def post_inline_comment(
        self,
        location: CommentLocation,
        body: str,
        existing_id: int | None = None,
    ) -> int | None:
        """
        Create or update a review comment at ``location``.

        Returns the comment id, or ``None`` when GitHub rejects the comment
        (usually because the line is not part of the diff).
        """
        full_body = self._with_markers("INLINE_MARKER", body)
        try:
            if existing_id:
                await self._request(
                    "PATCH",
                    f"{self._repo_path}/pulls/comments/{existing_id}",
                    json={"body": full_body},
                )
                logger.info(
                    "Updated existing inline comment",
                    comment_id=existing_id,
                    path=location.path,
                    line=location.line,
                )
                return existing_id

            data = await self._request(
                "POST",
                f"{self._repo_path}/pulls/{self.context.pull_number}/comments",
                json={
                    "body": full_body,
                    "commit_id": self.context.sha,
                    "path": location.path,
                    "line": location.line,
                    "side": location.side,
                },
            )
        except GitHubError as e:
            logger.warning(
                "Could not post inline comment",
                path=location.path,
                line=location.line,
                side=location.side,
                error=e.message,
                details=e.details,
            )
            return None

        if not isinstance(data, dict):
            return None
        logger.info(
            "Created new inline comment",
            comment_id=data.get("id"),
            path=location.path,
            line=location.line,
        )
        return data.get("id")

    async def create_issue_comment(self, body: str) -> dict[str, Any]:
        """Create a simple comment on a PR (not a review)."""
        data = await self._request(
            "POST",
            f"{self._repo_path}/issues/{self.context.pull_number}/comments",
            json={"body": body},
        )

        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")

        return data

    async def delete_comment(self, comment_id: int, kind: Literal["issue", "review"]) -> None:
        endpoint = (
            f"{self._repo_path}/issues/comments/{comment_id}"
            if kind == "issue"
            else f"{self._repo_path}/pulls/comments/{comment_id}"
        )
        try:
            await self._request("DELETE", endpoint)
            logger.info("Deleted comment", comment_id=comment_id, kind=kind)
        except GitHubError as e:
            logger.warning("Could not delete comment", comment_id=comment_id, error=e.message)

    # -------------------------------------------------------------------------
    # Rate limit
    # -------------------------------------------------------------------------

    async def get_rate_limit(self) -> RateLimit:
        try:
            data = await self._request("GET", "/rate_limit")
            if not isinstance(data, dict):
                raise GitHubError("Unexpected response format")
            core = data["resources"]["core"]
            return RateLimit(
                limit=core["limit"],
                remaining=core["remaining"],
                reset=datetime.fromtimestamp(core["reset"], tz=timezone.utc),
            )
        except (GitHubError, KeyError) as e:
            logger.warning("Could not fetch rate limit", error=str(e))
            return RateLimit(
                limit=5000,
                remaining=1000,
                reset=datetime.now(timezone.utc) + timedelta(hours=1),
            )

    async def check_rate_limit(self) -> RateLimit:
        rate_limit = await self.get_rate_limit()
        if rate_limit.is_low:
            logger.warning(
                "GitHub API rate limit low",
                remaining=rate_limit.remaining,
                limit=rate_limit.limit,
                reset=rate_limit.reset.isoformat(),
            )
        return rate_limit
