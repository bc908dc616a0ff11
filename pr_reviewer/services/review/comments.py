from collections import defaultdict
from dataclasses import dataclass

import structlog

from pr_reviewer.core.config import Settings, severity_level
from pr_reviewer.core.exceptions import GitHubError
from pr_reviewer.services.github.client import GitHubClient
from pr_reviewer.services.github.models import (
    CommentLocation,
    ExistingComment,
    ExistingComments,
    FileChange,
    PRContext,
)
from pr_reviewer.services.llm.models import CodeIssue, PRPlan, ReviewResult, ReviewType
from pr_reviewer.services.review.diff_parser import DiffLineMapper
from pr_reviewer.services.review.flow_diagram import FlowDiagram
from pr_reviewer.services.review.formatter import (
    ISSUE_ICONS,
    format_architectural_comment_body,
    format_inline_comment_body,
    format_summary_comment_body,
)

logger = structlog.get_logger()

NEARBY_LINES = 5
MAX_SIMILAR_DISTANCE = 10


@dataclass
class CommentMatch:
    comment: ExistingComment
    reason: str


def are_issues_similar(
    issue: CodeIssue,
    comment: ExistingComment,
    new_line: int,
    existing_line: int,
    allow_large_distance: bool = False,
) -> bool:
    """
    Decide whether an existing comment already describes ``issue``.

    Similar means the same type plus more than half of the message's words
    appear in the comment, or more than 80% of them do regardless of type.
    Only words longer than three characters count.
    """
    if not allow_large_distance and abs(new_line - existing_line) > MAX_SIMILAR_DISTANCE:
        return False

    body = comment.body.lower()
    issue_type = issue.type.value
    type_matches = issue_type in body or ISSUE_ICONS.get(issue_type, issue_type) in body

    words = [w for w in issue.message.lower().split(" ") if len(w) > 3]
    matching = [w for w in words if w in body]
    ratio = len(matching) / max(len(words), 1)

    return (type_matches and ratio > 0.5) or ratio > 0.8


def find_best_matching_comment(
    file: str,
    line: int,
    issue: CodeIssue,
    existing: list[ExistingComment],
    updated_ids: set[int] | None = None,
) -> CommentMatch | None:
    """
    Pick the existing inline comment to update for a new issue.

    Tried in order: a comment on the same line, a similar comment within
    five lines, then a similar comment anywhere in the file. Comments in
    ``updated_ids`` were already reused this run and are skipped.
    """
    candidates = [
        c
        for c in existing
        if c.path == file and (updated_ids is None or c.id not in updated_ids)
    ]
    if not candidates:
        return None

    for comment in candidates:
        if comment.line == line:
            return CommentMatch(comment, "exact_line_match")

    for comment in candidates:
        existing_line = comment.line or 0
        distance = abs(existing_line - line)
        if distance <= NEARBY_LINES and are_issues_similar(issue, comment, line, existing_line):
            return CommentMatch(comment, f"nearby_similar_issue (distance: {distance} lines)")

    for comment in candidates:
        existing_line = comment.line or 0
        if are_issues_similar(issue, comment, line, existing_line, allow_large_distance=True):
            distance = abs(existing_line - line)
            return CommentMatch(comment, f"same_file_similar_issue (distance: {distance} lines)")

    return None


class CommentManager:
    """Filters, formats and posts review comments, reusing earlier ones."""

    def __init__(self, github: GitHubClient, settings: Settings, context: PRContext) -> None:
        self.github = github
        self.settings = settings
        self.context = context

    async def post_review_comments(
        self,
        result: ReviewResult,
        file_changes: list[FileChange],
        plan: PRPlan | None = None,
        flow_diagram: FlowDiagram | None = None,
    ) -> dict[str, int]:
        """
        Post inline, architectural and summary comments for a review.

        Returns the ids of inline comments keyed by ``file:diff_line``.

        Raises:
            GitHubError: If the summary comment cannot be posted.
        """
        settings = self.settings
        logger.info(
            "Posting review comments",
            comment_style=settings.comment_style,
            issues=len(result.issues),
            inline_severity=settings.inline_severity,
        )

        # 1. Existing comments
        existing = ExistingComments()
        if settings.update_existing_comments:
            existing = await self.github.get_existing_bot_comments()

        # 2. Original code for one-click suggestions
        issues = self.enhance_issues_with_original_code(result.issues, file_changes)

        # 3. Inline comments
        posted: dict[str, int] = {}
        if settings.should_post_inline:
            inline_issues = self.filter_issues_by_severity(issues)
            logger.info(
                "Filtered issues for inline comments",
                total=len(issues),
                eligible=len(inline_issues),
            )
            posted, updated_ids = await self.post_inline_comments(
                inline_issues, file_changes, existing.inline_comments
            )
            if settings.delete_orphaned_comments:
                await self.cleanup_orphaned_comments(
                    existing.inline_comments, updated_ids, file_changes
                )

        # 4. Architectural comment
        architectural = [i for i in issues if i.review_type == ReviewType.ARCHITECTURAL]
        if architectural:
            try:
                await self.github.post_architectural_comment(
                    format_architectural_comment_body(architectural, file_changes, self.context),
                    existing.architectural_comment.id if existing.architectural_comment else None,
                )
            except GitHubError as e:
                logger.error("Failed to post architectural comment", error=e.message)

        # 5. Summary comment, last so it links to everything above
        if not settings.should_post_summary:
            logger.info("Summary comment disabled", comment_style=settings.comment_style)
            return posted
        if not file_changes:
            logger.info("Summary comment skipped, no file changes to review")
            return posted

        # log_level limits what the summary reports
        summary_result = ReviewResult(
            summary=result.summary,
            issues=self.filter_issues_by_log_level(issues),
            files_reviewed=result.files_reviewed,
            total_files=result.total_files,
            rules_applied=result.rules_applied,
            status=result.status,
        )
        body = format_summary_comment_body(
            summary_result,
            file_changes,
            self.context,
            settings.summary_format,
            plan,
            flow_diagram,
        )
        await self.github.post_summary_comment(
            body, existing.summary_comment.id if existing.summary_comment else None
        )
        logger.info("Summary comment posted", files=len(file_changes), issues=len(issues))
        return posted

    async def post_inline_comments(
        self,
        issues: list[CodeIssue],
        file_changes: list[FileChange],
        existing: list[ExistingComment],
    ) -> tuple[dict[str, int], set[int]]:
        """
        Post one comment per ``file:line`` location.

        Returns the posted ids keyed by ``file:diff_line`` and the ids of the
        existing comments that were updated.
        """
        patches = {fc.filename: fc.patch for fc in file_changes if fc.patch}
        posted: dict[str, int] = {}
        updated_ids: set[int] = set()

        for (file, diff_line), location_issues in self._group_by_location(issues).items():
            if diff_line <= 0:
                logger.warning("Invalid diff line number", file=file, line=diff_line)
                continue

            patch = patches.get(file)
            if patch is None:
                logger.warning("No patch found for file", file=file)
                continue

            mapper = DiffLineMapper(patch)
            file_line = mapper.to_file_line(diff_line)
            if file_line is None:
                fallback = mapper.find_valid_comment_location(diff_line)
                if fallback is None:
                    logger.warning("No valid comment line found", file=file, diff_line=diff_line)
                    continue
                file_line, reason = fallback
                logger.info(
                    "Adjusted comment location",
                    file=file,
                    diff_line=diff_line,
                    file_line=file_line,
                    reason=reason,
                )

            body = format_inline_comment_body(
                location_issues,
                enable_suggestions=self.settings.enable_suggestions,
                enable_auto_fix=self.settings.enable_auto_fix,
            )
            match = find_best_matching_comment(
                file, file_line, location_issues[0], existing, updated_ids
            )
            existing_id = None
            if match is not None:
                existing_id = match.comment.id
                updated_ids.add(existing_id)
                logger.debug(
                    "Matched existing comment",
                    comment_id=existing_id,
                    reason=match.reason,
                )

            comment_id = await self.github.post_inline_comment(
                CommentLocation(path=file, line=file_line), body, existing_id
            )
            if comment_id:
                posted[f"{file}:{diff_line}"] = comment_id

        return posted, updated_ids

    @staticmethod
    def _group_by_location(issues: list[CodeIssue]) -> dict[tuple[str, int], list[CodeIssue]]:
        grouped: dict[tuple[str, int], list[CodeIssue]] = defaultdict(list)
        skipped = 0
        for issue in issues:
            if not issue.file or issue.line is None:
                skipped += 1
                continue
            grouped[(issue.file, issue.line)].append(issue)
        if skipped:
            logger.info("Skipped issues without a location", count=skipped)
        return dict(grouped)

    async def cleanup_orphaned_comments(
        self,
        existing: list[ExistingComment],
        updated_ids: set[int],
        file_changes: list[FileChange],
    ) -> int:
        """Delete earlier inline comments on changed files that nothing reused."""
        changed = {fc.filename for fc in file_changes}
        orphaned = [c for c in existing if c.path in changed and c.id not in updated_ids]
        for comment in orphaned:
            logger.info(
                "Deleting orphaned comment",
                comment_id=comment.id,
                path=comment.path,
                line=comment.line,
            )
            await self.github.delete_comment(comment.id, "review")
        return len(orphaned)

    def enhance_issues_with_original_code(
        self, issues: list[CodeIssue], file_changes: list[FileChange]
    ) -> list[CodeIssue]:
        """Attach the replaced source line to issues carrying a fix."""
        patches = {fc.filename: fc.patch for fc in file_changes if fc.patch}
        enhanced = []
        for issue in issues:
            patch = patches.get(issue.file)
            if issue.original_code or not issue.fixed_code or not issue.line or patch is None:
                enhanced.append(issue)
                continue
            mapper = DiffLineMapper(patch)
            file_line = mapper.to_file_line(issue.line)
            original = mapper.original_code_at(file_line) if file_line else None
            enhanced.append(issue.with_changes(original_code=original) if original else issue)
        return enhanced

    def filter_issues_by_severity(self, issues: list[CodeIssue]) -> list[CodeIssue]:
        minimum = severity_level(self.settings.inline_severity)
        return [i for i in issues if severity_level(i.type.value) >= minimum]

    def filter_issues_by_log_level(self, issues: list[CodeIssue]) -> list[CodeIssue]:
        minimum = severity_level(self.settings.log_level)
        return [i for i in issues if severity_level(i.type.value) >= minimum]
