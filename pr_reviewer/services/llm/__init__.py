from pr_reviewer.services.llm.base import LLMProvider
from pr_reviewer.services.llm.models import (
    ArchitecturalReviewResult,
    CodeIssue,
    IssueCategory,
    IssueSeverity,
    IssueType,
    PRPlan,
    ReviewContext,
    ReviewType,
)
from pr_reviewer.services.llm.router import LLMRouter, resolve_provider_and_model

__all__ = [
    "ArchitecturalReviewResult",
    "CodeIssue",
    "IssueCategory",
    "IssueSeverity",
    "IssueType",
    "LLMProvider",
    "LLMRouter",
    "PRPlan",
    "ReviewContext",
    "ReviewType",
    "resolve_provider_and_model",
]
