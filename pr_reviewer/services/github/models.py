from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class FileStatus(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class User(BaseModel):
    """GitHub user information."""

    login: str
    id: int
    avatar_url: str | None = None
    html_url: str | None = None


class PRContext(BaseModel):
    """The pull request an action run is reviewing."""

    owner: str
    repo: str
    pull_number: int
    sha: str
    base_sha: str = ""


class PullRequest(BaseModel):
    """Pull request information from GitHub."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    number: int
    title: str
    body: str | None = None
    state: Literal["open", "closed"]
    html_url: str
    user: User
    head_sha: str
    base_sha: str
    head_ref: str
    base_ref: str
    created_at: datetime
    updated_at: datetime
    merged_at: datetime | None = None


class FileChange(BaseModel):
    """A file changed in a pull request."""

    filename: str
    status: FileStatus
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None
    previous_filename: str | None = None


class CommentLocation(BaseModel):
    """Where an inline review comment is anchored."""

    path: str
    line: int
    side: Literal["LEFT", "RIGHT"] = "RIGHT"


class ExistingComment(BaseModel):
    """A comment previously posted by the reviewer."""

    id: int
    body: str
    path: str | None = None
    line: int | None = None
    side: Literal["LEFT", "RIGHT"] = "RIGHT"


class ExistingComments(BaseModel):
    """Bot comments already present on the PR."""

    summary_comment: ExistingComment | None = None
    architectural_comment: ExistingComment | None = None
    inline_comments: list[ExistingComment] = Field(default_factory=list)


class RateLimit(BaseModel):
    """Core REST API rate limit status."""

    limit: int
    remaining: int
    reset: datetime

    @property
    def is_low(self) -> bool:
        return self.remaining < self.limit * 0.1
