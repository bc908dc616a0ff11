"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable
from typing import Any

import pytest

# =============================================================================
# Environment Setup (must happen before package imports)
# =============================================================================

os.environ.setdefault("INPUT_GH_TOKEN", "test-token-for-testing")
os.environ.setdefault("INPUT_OPENAI_API_KEY", "test-key-for-testing")
os.environ.setdefault("GITHUB_REPOSITORY", "owner/repo")

from pr_reviewer.core.config import Settings  # noqa: E402
from pr_reviewer.services.github.models import FileChange, FileStatus, PRContext  # noqa: E402
from pr_reviewer.services.llm.models import (  # noqa: E402
    CodeIssue,
    IssueCategory,
    IssueType,
)
from pr_reviewer.services.rules.parser import CursorRule, RuleType  # noqa: E402
from tests.fixtures.sample_diffs import SIMPLE_MODIFICATION  # noqa: E402


# =============================================================================
# Pytest-Asyncio Configuration
# =============================================================================

pytest_plugins = ("pytest_asyncio",)


# =============================================================================
# Settings and Context Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with throttling disabled so tests never sleep."""
    return Settings(
        gh_token="test-token",
        openai_api_key="test-key",
        ai_provider="openai",
        model="gpt-4o-mini",
        github_rate_limit=0,
        request_delay=0,
    )


@pytest.fixture
def pr_context() -> PRContext:
    return PRContext(owner="owner", repo="repo", pull_number=7, sha="abc123", base_sha="def456")


@pytest.fixture
def file_change() -> FileChange:
    return FileChange(
        filename="src/main.py",
        status=FileStatus.MODIFIED,
        additions=2,
        deletions=1,
        changes=3,
        patch=SIMPLE_MODIFICATION,
    )


@pytest.fixture
def always_rule() -> CursorRule:
    return CursorRule(
        id="python_style",
        type=RuleType.ALWAYS,
        content="Use descriptive variable names.",
        file_path=".cursor/rules/python_style.mdc",
        description="Python style",
        always_apply=True,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_issue() -> Callable[..., CodeIssue]:
    """Build a CodeIssue with sensible defaults."""

    def _make(**overrides: Any) -> CodeIssue:
        values: dict[str, Any] = {
            "type": IssueType.WARNING,
            "category": IssueCategory.BEST_PRACTICE,
            "message": "Intermediate variable is unnecessary",
            "description": "Return the expression directly.",
            "file": "src/main.py",
            "line": 3,
        }
        values.update(overrides)
        return CodeIssue(**values)

    return _make
