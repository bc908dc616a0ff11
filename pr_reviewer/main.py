"""Action entry point: read inputs, run the review, report outputs."""

import asyncio

import structlog

from pr_reviewer.core.config import Settings, get_settings, validate_settings
from pr_reviewer.core.exceptions import ReviewerError
from pr_reviewer.core.logging import configure_logging
from pr_reviewer.services.github import actions
from pr_reviewer.services.github.models import PRContext
from pr_reviewer.services.llm.models import IssueType, ReviewResult
from pr_reviewer.services.review.pipeline import PRReviewer

logger = structlog.get_logger()


async def run_review(settings: Settings, context: PRContext) -> ReviewResult:
    reviewer = PRReviewer(settings, context, workspace=actions.get_workspace())
    try:
        return await reviewer.review_pr()
    finally:
        await reviewer.github.close()


def format_job_summary(result: ReviewResult) -> str:
    errors = sum(1 for i in result.issues if i.type == IssueType.ERROR)
    warnings = sum(1 for i in result.issues if i.type == IssueType.WARNING)
    return (
        "## 🤖 AI PR Review\n\n"
        "| Metric | Value |\n"
        "|--------|-------|\n"
        f"| Status | {result.status} |\n"
        f"| Files Reviewed | {result.files_reviewed} |\n"
        f"| Issues Found | {len(result.issues)} |\n"
        f"| Errors | {errors} |\n"
        f"| Warnings | {warnings} |\n"
        f"| Rules Applied | {len(result.rules_applied)} |\n\n"
        f"{result.summary}\n"
    )


def report(result: ReviewResult) -> None:
    actions.set_output("review_summary", result.summary)
    actions.set_output("files_reviewed", str(result.files_reviewed))
    actions.set_output("issues_found", str(len(result.issues)))
    actions.set_output("rules_applied", str(len(result.rules_applied)))
    actions.write_step_summary(format_job_summary(result))

    logger.info(
        "Review summary",
        files_reviewed=result.files_reviewed,
        issues_found=len(result.issues),
        rules_applied=len(result.rules_applied),
        status=result.status,
    )


def main() -> int:
    """Run the action; returns the process exit code."""
    configure_logging()

    try:
        settings = get_settings()
        validate_settings(settings)
        logger.info(
            "AI PR Reviewer starting",
            provider=settings.ai_provider,
            review_level=settings.review_level,
            comment_style=settings.comment_style,
        )

        context = actions.extract_pr_context(settings)
        result = asyncio.run(run_review(settings, context))
    except ReviewerError as e:
        logger.error("Action failed", error=e.message, **e.details)
        return actions.set_failed(f"Action failed: {e.message}")
    except Exception as e:
        logger.exception("Unexpected error")
        return actions.set_failed(f"Action failed: {e}")

    report(result)
    if result.status == "needs_attention":
        actions.warning(
            f"Review completed with {len(result.issues)} issue(s) that need attention"
        )
    else:
        logger.info("Review passed")
    return 0
