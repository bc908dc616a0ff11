import base64
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from pr_reviewer.core.config import COMMENT_MARKERS, Settings
from pr_reviewer.core.exceptions import (
    GitHubAuthenticationError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from pr_reviewer.services.github.client import GitHubClient
from pr_reviewer.services.github.models import CommentLocation, PRContext

BOT = COMMENT_MARKERS["BOT_IDENTIFIER"]

PULL_REQUEST: dict[str, Any] = {
    "id": 12345,
    "number": 7,
    "title": "Test PR",
    "body": "Test body",
    "state": "open",
    "html_url": "https://github.com/owner/repo/pull/7",
    "user": {"login": "testuser", "id": 1},
    "head": {"sha": "head-sha", "ref": "feature-branch"},
    "base": {"sha": "base-sha", "ref": "main"},
    "created_at": "2024-01-01T00:00:00Z",
    "updated_at": "2024-01-01T00:00:00Z",
    "merged_at": None,
}


def file_entry(filename: str, status: str = "modified") -> dict[str, Any]:
    return {
        "filename": filename,
        "status": status,
        "additions": 1,
        "deletions": 0,
        "changes": 1,
        "patch": "@@ -1 +1,2 @@\n line\n+added",
    }


class TestGitHubClient:
    """Tests for the GitHub client."""

    @pytest.fixture
    def client(self, pr_context: PRContext) -> GitHubClient:
        return GitHubClient(token="test-token", context=pr_context, rate_limit_delay_ms=0)

    @pytest.mark.asyncio
    async def test_get_pull_request(self, client: GitHubClient) -> None:
        """Test fetching a pull request."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = PULL_REQUEST
            pr = await client.get_pull_request()

        mock_request.assert_awaited_once_with("GET", "/repos/owner/repo/pulls/7")
        assert pr.number == 7
        assert pr.head_sha == "head-sha"
        assert pr.base_ref == "main"

    @pytest.mark.asyncio
    async def test_get_pull_request_not_found(self, client: GitHubClient) -> None:
        """Test handling of non-existent PR."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = GitHubNotFoundError("Not found")

            with pytest.raises(GitHubNotFoundError):
                await client.get_pull_request()

    @pytest.mark.asyncio
    async def test_get_pr_changes_filters_and_truncates(
        self, client: GitHubClient, settings: Settings
    ) -> None:
        """Test exclude wins over include and max_files truncates."""
        settings = settings.model_copy(update={"max_files": 2})
        files = [
            file_entry("src/a.py"),
            file_entry("dist/bundle.js"),
            file_entry("README.md"),
            file_entry("src/b.ts", "added"),
            file_entry("src/c.go"),
        ]

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = [PULL_REQUEST, files]
            changes = await client.get_pr_changes(settings)

        assert [c.filename for c in changes] == ["src/a.py", "src/b.ts"]
        assert changes[1].status.value == "added"

    @pytest.mark.asyncio
    async def test_get_pr_changes_paginates(
        self, client: GitHubClient, settings: Settings
    ) -> None:
        """Test a full page triggers a request for the next one."""
        settings = settings.model_copy(update={"max_files": 200})
        first_page = [file_entry(f"src/f{i}.py") for i in range(100)]
        second_page = [file_entry("src/last.py")]

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = [PULL_REQUEST, first_page, second_page]
            changes = await client.get_pr_changes(settings)

        assert len(changes) == 101
        assert mock_request.call_args.kwargs["params"] == {"per_page": 100, "page": 2}

    @pytest.mark.asyncio
    async def test_get_pr_changes_refreshes_sha_for_manual_runs(
        self, client: GitHubClient, settings: Settings
    ) -> None:
        """Test an explicit PR number takes head and base from the PR."""
        settings = settings.model_copy(update={"pr_number": 7})

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = [PULL_REQUEST, []]
            await client.get_pr_changes(settings)

        assert client.context.sha == "head-sha"
        assert client.context.base_sha == "base-sha"

    @pytest.mark.asyncio
    async def test_get_file_content_decodes_base64(self, client: GitHubClient) -> None:
        """Test file content is decoded at the head sha."""
        encoded = base64.b64encode(b"print('hi')\n").decode()

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"type": "file", "encoding": "base64", "content": encoded}
            content = await client.get_file_content("src/main.py")

        assert content == "print('hi')\n"
        assert mock_request.call_args.kwargs["params"] == {"ref": "abc123"}

    @pytest.mark.asyncio
    async def test_get_file_content_missing(self, client: GitHubClient) -> None:
        """Test missing files return None instead of raising."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = GitHubNotFoundError("Not found")
            assert await client.get_file_content("new.py") is None

    @pytest.mark.asyncio
    async def test_get_existing_bot_comments(self, client: GitHubClient) -> None:
        """Test bot comments are classified by marker."""
        issue_comments = [
            {"id": 1, "body": "A human comment"},
            {"id": 2, "body": f"{BOT}\n{COMMENT_MARKERS['SUMMARY_MARKER']}\n\nSummary"},
            {"id": 3, "body": f"{BOT}\n{COMMENT_MARKERS['ARCHITECTURAL_MARKER']}\n\nArch"},
        ]
        review_comments = [
            {
                "id": 10,
                "body": f"{BOT}\n{COMMENT_MARKERS['INLINE_MARKER']}\n\nFinding",
                "path": "src/main.py",
                "line": None,
                "original_line": 4,
            },
            {"id": 11, "body": "Reviewer note", "path": "src/main.py", "line": 2},
        ]

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = [issue_comments, review_comments]
            existing = await client.get_existing_bot_comments()

        assert existing.summary_comment is not None
        assert existing.summary_comment.id == 2
        assert existing.architectural_comment is not None
        assert existing.architectural_comment.id == 3
        assert len(existing.inline_comments) == 1
        assert existing.inline_comments[0].line == 4
        assert existing.inline_comments[0].side == "RIGHT"

    @pytest.mark.asyncio
    async def test_existing_comments_span_pages(self, client: GitHubClient) -> None:
        """Test bot comments past the first page of review comments are found."""
        human_page = [{"id": i, "body": "LGTM", "path": "a.py", "line": 1} for i in range(100)]
        bot_review = {
            "id": 500,
            "body": f"{BOT}\n{COMMENT_MARKERS['INLINE_MARKER']}\n\nFinding",
            "path": "src/main.py",
            "line": 3,
        }

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = [[], human_page, [bot_review]]
            existing = await client.get_existing_bot_comments()

        assert [c.id for c in existing.inline_comments] == [500]
        assert mock_request.await_count == 3
        assert mock_request.call_args.kwargs["params"] == {"per_page": 100, "page": 2}

    @pytest.mark.asyncio
    async def test_architectural_comment_not_reused_as_summary(
        self, client: GitHubClient
    ) -> None:
        """Test a comment matching both headers counts only as architectural."""
        body = f"{BOT}\n## 🏗️ Architectural Review\n\nAI PR Review Summary"

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = [[{"id": 5, "body": body}], []]
            existing = await client.get_existing_bot_comments()

        assert existing.summary_comment is None
        assert existing.architectural_comment is not None

    @pytest.mark.asyncio
    async def test_get_existing_bot_comments_error(self, client: GitHubClient) -> None:
        """Test failures yield no existing comments."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = GitHubError("boom")
            existing = await client.get_existing_bot_comments()

        assert existing.summary_comment is None
        assert existing.inline_comments == []

    @pytest.mark.asyncio
    async def test_post_summary_comment_creates(self, client: GitHubClient) -> None:
        """Test a new summary is posted with markers."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"id": 99}
            await client.post_summary_comment("Body")

        method, endpoint = mock_request.call_args.args
        assert method == "POST"
        assert endpoint == "/repos/owner/repo/issues/7/comments"
        body = mock_request.call_args.kwargs["json"]["body"]
        assert body == f"{BOT}\n{COMMENT_MARKERS['SUMMARY_MARKER']}\n\nBody"

    @pytest.mark.asyncio
    async def test_post_summary_comment_updates(self, client: GitHubClient) -> None:
        """Test an existing summary is patched in place."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"id": 42}
            await client.post_summary_comment("Body", existing_id=42)

        assert mock_request.call_args.args == ("PATCH", "/repos/owner/repo/issues/comments/42")

    @pytest.mark.asyncio
    async def test_post_summary_comment_error(self, client: GitHubClient) -> None:
        """Test summary failures propagate."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = GitHubError("denied")

            with pytest.raises(GitHubError, match="Failed to post summary comment"):
                await client.post_summary_comment("Body")

    @pytest.mark.asyncio
    async def test_post_inline_comment(self, client: GitHubClient) -> None:
        """Test inline comments are anchored to the head commit."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"id": 77}
            comment_id = await client.post_inline_comment(
                CommentLocation(path="src/main.py", line=3), "Finding"
            )

        assert comment_id == 77
        payload = mock_request.call_args.kwargs["json"]
        assert payload["commit_id"] == "abc123"
        assert payload["line"] == 3
        assert payload["side"] == "RIGHT"

    @pytest.mark.asyncio
    async def test_post_inline_comment_rejected(self, client: GitHubClient) -> None:
        """Test rejected inline comments return None."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = GitHubError("GitHub API error: 422")
            comment_id = await client.post_inline_comment(
                CommentLocation(path="src/main.py", line=300), "Finding"
            )

        assert comment_id is None

    @pytest.mark.asyncio
    async def test_delete_comment_failure_only_warns(self, client: GitHubClient) -> None:
        """Test delete failures do not raise."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = GitHubNotFoundError("gone")
            await client.delete_comment(10, "review")

        assert mock_request.call_args.args == ("DELETE", "/repos/owner/repo/pulls/comments/10")

    @pytest.mark.asyncio
    async def test_rate_limit_fallback(self, client: GitHubClient) -> None:
        """Test rate limit lookup falls back to defaults on error."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = GitHubError("boom")
            rate_limit = await client.check_rate_limit()

        assert rate_limit.limit == 5000
        assert rate_limit.remaining == 1000
        assert not rate_limit.is_low

    @pytest.mark.asyncio
    async def test_get_repository_info(self, client: GitHubClient) -> None:
        """Test repository metadata is returned as-is."""
        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"full_name": "owner/repo"}
            info = await client.get_repository_info()

        assert info["full_name"] == "owner/repo"


class TestRequestErrors:
    """Tests for HTTP status handling."""

    def make_client(self, pr_context: PRContext, response: httpx.Response) -> GitHubClient:
        client = GitHubClient(token="test-token", context=pr_context, rate_limit_delay_ms=0)
        client._client = httpx.AsyncClient(
            base_url="https://api.github.com",
            transport=httpx.MockTransport(lambda request: response),
        )
        return client

    @pytest.mark.asyncio
    async def test_unauthorized(self, pr_context: PRContext) -> None:
        """Test 401 raises an authentication error."""
        client = self.make_client(pr_context, httpx.Response(401))

        with pytest.raises(GitHubAuthenticationError):
            await client.get_pull_request()
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limited(self, pr_context: PRContext) -> None:
        """Test 403 with a rate limit message raises a rate limit error."""
        response = httpx.Response(
            403,
            text="API rate limit exceeded",
            headers={"X-RateLimit-Reset": "1700000000"},
        )
        client = self.make_client(pr_context, response)

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await client.get_pull_request()
        assert exc_info.value.reset_at == 1700000000
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error(self, pr_context: PRContext) -> None:
        """Test other failures raise a generic GitHub error."""
        client = self.make_client(pr_context, httpx.Response(502, text="Bad gateway"))

        with pytest.raises(GitHubError, match="GitHub API error: 502"):
            await client.get_pull_request()
        await client.close()

    @pytest.mark.asyncio
    async def test_no_content(self, pr_context: PRContext) -> None:
        """Test 204 responses return None."""
        client = self.make_client(pr_context, httpx.Response(204))

        assert await client._request("DELETE", "/repos/owner/repo/issues/comments/1") is None
        await client.close()
