"""Main review pipeline orchestration."""

import asyncio
from pathlib import Path

import structlog

from pr_reviewer.core.config import Settings
from pr_reviewer.core.exceptions import LLMError, ReviewError
from pr_reviewer.services.github.client import GitHubClient
from pr_reviewer.services.github.models import FileChange, PRContext
from pr_reviewer.services.llm.base import LLMProvider
from pr_reviewer.services.llm.models import (
    CodeIssue,
    IssueType,
    PRPlan,
    ReviewContext,
    ReviewResult,
    ReviewStatus,
    ReviewType,
)
from pr_reviewer.services.llm.router import LLMRouter
from pr_reviewer.services.review.autofix import AutoFixManager
from pr_reviewer.services.review.comments import CommentManager
from pr_reviewer.services.review.flow_diagram import FlowDiagram, FlowDiagramGenerator
from pr_reviewer.services.review.formatter import generate_fallback_summary
from pr_reviewer.services.rules.parser import CursorRule, CursorRulesConfig, CursorRulesParser

logger = structlog.get_logger()

CONTENT_PREVIEW_CHARS = 2000


def determine_status(issues: list[CodeIssue]) -> ReviewStatus:
    """Errors or warnings need attention; a review never fails the PR."""
    if any(i.type in (IssueType.ERROR, IssueType.WARNING) for i in issues):
        return "needs_attention"
    return "passed"


def skipped_result(reason: str) -> ReviewResult:
    logger.info("Skipping review", reason=reason)
    return ReviewResult(summary=f"Review skipped: {reason}", status="passed")


def create_batches(files: list[FileChange], batch_size: int) -> list[list[FileChange]]:
    size = max(batch_size, 1)
    return [files[i : i + size] for i in range(0, len(files), size)]


class PRReviewer:
    """Orchestrates one review run for a pull request."""

    def __init__(
        self,
        settings: Settings,
        context: PRContext,
        workspace: Path,
        github_client: GitHubClient | None = None,
        provider: LLMProvider | None = None,
    ) -> None:
        self.settings = settings
        self.context = context
        self.workspace = workspace
        self.github = github_client or GitHubClient(
            settings.gh_token.get_secret_value(),
            context,
            base_url=settings.github_api_url,
            rate_limit_delay_ms=settings.github_rate_limit,
        )
        self.provider = provider or LLMRouter(settings).get_provider()
        self.rules_parser = CursorRulesParser(workspace)
        self.comments = CommentManager(self.github, settings, context)
        self.auto_fix = AutoFixManager(self.github, settings, workspace)

    async def review_pr(self) -> ReviewResult:
        """
        Run the full review and post its comments.

        Raises:
            ReviewError: If an AI step fails.
            GitHubError: If the PR cannot be read or the summary not posted.
        """
        settings = self.settings
        logger.info(
            "Starting PR review",
            owner=self.context.owner,
            repo=self.context.repo,
            pr_number=self.context.pull_number,
            provider=self.provider.name,
            model=self.provider.model,
        )

        # 1. Parse rules
        rules_config = self.rules_parser.parse_all_rules(settings.rules_path)
        if settings.skip_if_no_rules and not rules_config.has_rules():
            return skipped_result("No Cursor rules found")

        # 2. Fetch changed files
        file_changes = await self.github.get_pr_changes(settings)
        if not file_changes:
            return skipped_result("No files to review")
        logger.info("Found files to review", count=len(file_changes))

        # 3. Select the rules that apply to these files
        applicable_rules = self.rules_parser.filter_rules_for_files(
            rules_config.project_rules, [fc.filename for fc in file_changes]
        )
        logger.info("Applying rules", count=len(applicable_rules))
        if not applicable_rules and settings.skip_if_no_rules:
            return skipped_result("No applicable rules found")

        # 4. Plan
        plan = await self._generate_plan(file_changes, applicable_rules)
        logger.info("PR plan created", overview=plan.overview)

        # 5. Architectural review
        architectural_issues: list[CodeIssue] = []
        if settings.enable_architectural_review:
            architectural_issues = await self._review_architecture(file_changes, applicable_rules)

        # 6. Detailed review in batches
        detailed = await self._review_in_batches(
            file_changes, applicable_rules, plan, rules_config.guidelines
        )

        # 7. Tag review types
        detailed_issues = [i.with_changes(review_type=ReviewType.DETAILED) for i in detailed]
        all_issues = architectural_issues + detailed_issues

        # 8. Result and summary
        result = await self._build_result(all_issues, file_changes, applicable_rules, rules_config)

        # 9. Flow diagram
        flow_diagram: FlowDiagram | None = None
        if settings.enable_flow_diagram and len(file_changes) > 1:
            generator = FlowDiagramGenerator(self.provider, settings.flow_diagram_max_files)
            flow_diagram = await generator.generate(file_changes, plan)

        # 10. Auto-fix
        if settings.enable_auto_fix:
            fixes = await self.auto_fix.apply_auto_fixes(all_issues, file_changes)
            if any(fix.applied for fix in fixes):
                await self.auto_fix.commit_fixes(fixes)
            elif fixes:
                logger.info("No auto-fixes could be applied")

        # 11. Comments
        await self.comments.post_review_comments(result, file_changes, plan, flow_diagram)

        logger.info("Review completed", status=result.status, issues=len(all_issues))
        return result

    async def _generate_plan(self, files: list[FileChange], rules: list[CursorRule]) -> PRPlan:
        try:
            return await self.provider.generate_pr_plan(files, rules)
        except LLMError as e:
            logger.error("Failed to generate PR plan", error=e.message)
            raise ReviewError(f"AI PR plan generation failed: {e.message}") from e

    async def _review_architecture(
        self, files: list[FileChange], rules: list[CursorRule]
    ) -> list[CodeIssue]:
        try:
            review = await self.provider.review_architecture(files, rules)
        except LLMError as e:
            logger.error("Failed to conduct architectural review", error=e.message)
            raise ReviewError(f"Architectural review failed: {e.message}") from e

        issues = [i.with_changes(review_type=ReviewType.ARCHITECTURAL) for i in review.issues]
        logger.info(
            "Architectural review completed",
            issues=len(issues),
            confidence=review.confidence,
        )
        return issues

    async def _review_in_batches(
        self,
        files: list[FileChange],
        rules: list[CursorRule],
        plan: PRPlan,
        guidelines: list[str],
    ) -> list[CodeIssue]:
        batches = create_batches(files, self.settings.batch_size)
        logger.info(
            "Reviewing files in batches",
            files=len(files),
            batches=len(batches),
            batch_size=self.settings.batch_size,
        )

        issues: list[CodeIssue] = []
        for index, batch in enumerate(batches, start=1):
            logger.info("Reviewing batch", batch=index, total=len(batches), files=len(batch))
            with_previews = await self._with_previews(batch)
            try:
                issues.extend(
                    await self.provider.review_batch(with_previews, rules, plan, guidelines)
                )
            except LLMError as e:
                logger.error("Batch review failed", batch=index, error=e.message)
                raise ReviewError(f"AI review failed for batch {index}: {e.message}") from e

            if index < len(batches) and self.settings.request_delay > 0:
                logger.debug("Waiting before next batch", delay_ms=self.settings.request_delay)
                await asyncio.sleep(self.settings.request_delay / 1000)
        return issues

    async def _with_previews(self, files: list[FileChange]) -> list[FileChange]:
        """Give files without a patch a preview of their head content instead."""
        result = []
        for file in files:
            if file.patch:
                result.append(file)
                continue
            content = await self.github.get_file_content(file.filename, self.context.sha)
            if content is None:
                result.append(file)
                continue
            suffix = "..." if len(content) > CONTENT_PREVIEW_CHARS else ""
            patch = f"Content: {content[:CONTENT_PREVIEW_CHARS]}{suffix}"
            result.append(file.model_copy(update={"patch": patch}))
        return result

    async def _build_result(
        self,
        issues: list[CodeIssue],
        file_changes: list[FileChange],
        applied_rules: list[CursorRule],
        rules_config: CursorRulesConfig,
    ) -> ReviewResult:
        context = ReviewContext(
            pr_context=self.context,
            file_changes=file_changes,
            rules_config=rules_config,
        )
        try:
            summary = await self.provider.generate_summary(issues, context)
        except LLMError as e:
            logger.error("AI provider error generating summary", error=e.message)
            raise ReviewError(f"AI summary generation failed: {e.message}") from e

        if not summary:
            logger.warning("AI summary was empty, using fallback summary")
            summary = generate_fallback_summary(issues, len(file_changes))

        return ReviewResult(
            summary=summary,
            issues=issues,
            files_reviewed=len(file_changes),
            total_files=len(file_changes),
            rules_applied=applied_rules,
            status=determine_status(issues),
        )
