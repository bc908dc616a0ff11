from pr_reviewer.services.github.client import GitHubClient
from pr_reviewer.services.github.models import (
    CommentLocation,
    ExistingComment,
    ExistingComments,
    FileChange,
    PRContext,
    PullRequest,
)

__all__ = [
    "GitHubClient",
    "CommentLocation",
    "ExistingComment",
    "ExistingComments",
    "FileChange",
    "PRContext",
    "PullRequest",
]
