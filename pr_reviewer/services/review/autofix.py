from dataclasses import dataclass
from pathlib import Path

import structlog

from pr_reviewer.core.config import Settings, severity_level
from pr_reviewer.core.exceptions import GitHubError
from pr_reviewer.services.github.client import GitHubClient
from pr_reviewer.services.github.models import FileChange
from pr_reviewer.services.llm.models import CodeIssue
from pr_reviewer.services.review.diff_parser import DiffLineMapper
from pr_reviewer.services.review.formatter import (
    AUTO_FIX_CATEGORIES,
    format_auto_fix_summary,
    group_issues_by_file,
)

logger = structlog.get_logger()


@dataclass
class AutoFixResult:
    file: str
    issue: CodeIssue
    applied: bool
    error: str | None = None


@dataclass
class CommitResult:
    """What a commit of the fixes would contain; nothing is pushed."""

    message: str
    files_changed: int
    sha: str = ""


class AutoFixManager:
    """Writes model-proposed fixes into the checked-out workspace."""

    def __init__(self, github: GitHubClient, settings: Settings, workspace: Path) -> None:
        self.github = github
        self.settings = settings
        self.workspace = workspace

    def filter_eligible_issues(self, issues: list[CodeIssue]) -> list[CodeIssue]:
        minimum = severity_level(self.settings.auto_fix_severity)
        return [
            issue
            for issue in issues
            if (issue.fixed_code or issue.suggestion)
            and severity_level(issue.type.value) >= minimum
            and issue.category in AUTO_FIX_CATEGORIES
        ]

    async def apply_auto_fixes(
        self, issues: list[CodeIssue], file_changes: list[FileChange]
    ) -> list[AutoFixResult]:
        if not self.settings.enable_auto_fix:
            return []

        eligible = self.filter_eligible_issues(issues)
        if not eligible:
            logger.info("No eligible issues for auto-fix")
            return []

        logger.info("Attempting auto-fixes", issues=len(eligible))
        patches = {fc.filename: fc.patch for fc in file_changes if fc.patch}
        results: list[AutoFixResult] = []
        for filename, file_issues in group_issues_by_file(eligible).items():
            patch = patches.get(filename)
            if patch is None:
                # Model lines can only be mapped through the file's patch
                logger.warning("Skipping auto-fix for file without a patch", file=filename)
                results.extend(
                    AutoFixResult(filename, issue, applied=False, error="File has no diff to map")
                    for issue in file_issues
                )
                continue
            results.extend(await self._apply_fixes_to_file(filename, file_issues, patch))
        return results

    def _workspace_path(self, filename: str) -> Path | None:
        """Path of ``filename`` inside the workspace, or ``None`` if it escapes."""
        root = self.workspace.resolve()
        target = (root / filename).resolve()
        if not target.is_relative_to(root):
            logger.warning("Refusing to fix file outside the workspace", file=filename)
            return None
        return target

    async def _apply_fixes_to_file(
        self, filename: str, issues: list[CodeIssue], patch: str
    ) -> list[AutoFixResult]:
        path = self._workspace_path(filename)
        if path is None:
            return [
                AutoFixResult(filename, issue, applied=False, error="File is outside the workspace")
                for issue in issues
            ]

        content = await self._get_file_content(filename, path)
        if content is None:
            return [
                AutoFixResult(filename, issue, applied=False, error="Could not read file content")
                for issue in issues
            ]

        # Model lines are numbered-diff lines
        mapper = DiffLineMapper(patch)
        located: list[tuple[int, CodeIssue]] = []
        results: list[AutoFixResult] = []
        for issue in issues:
            file_line = self._file_line(issue.line, mapper)
            if file_line is None:
                results.append(
                    AutoFixResult(filename, issue, applied=False, error="No line number specified")
                )
                continue
            located.append((file_line, issue))

        lines = content.split("\n")
        # Bottom-up so earlier line numbers stay valid
        for file_line, issue in sorted(located, key=lambda item: item[0], reverse=True):
            end_line = self._file_line(issue.end_line, mapper) if issue.end_line else None
            error = self._apply_fix(lines, issue, file_line, end_line)
            results.append(AutoFixResult(filename, issue, applied=error is None, error=error))

        new_content = "\n".join(lines)
        if new_content != content:
            try:
                path.write_text(new_content, encoding="utf-8")
                logger.info("Applied auto-fixes", file=filename)
            except OSError as e:
                logger.error("Failed to write fixed content", file=filename, error=str(e))
                for result in results:
                    if result.applied:
                        result.applied = False
                        result.error = "Failed to write file"
        return results

    @staticmethod
    def _file_line(diff_line: int | None, mapper: DiffLineMapper) -> int | None:
        if not diff_line:
            return None
        return mapper.to_file_line(diff_line)

    @staticmethod
    def _apply_fix(
        lines: list[str], issue: CodeIssue, file_line: int, end_line: int | None
    ) -> str | None:
        """Edit ``lines`` in place; returns an error message when nothing applies."""
        index = file_line - 1
        if index < 0 or index >= len(lines):
            return "Line number out of range"

        if issue.fixed_code:
            end_index = (end_line - 1) if end_line and end_line >= file_line else index
            lines[index : end_index + 1] = [issue.fixed_code]
            return None

        suggestion = issue.suggestion or ""
        original = lines[index]
        # Only replace when the suggestion looks like a whole line, not advice
        if original and ("\n" in suggestion or len(suggestion) > len(original) * 0.5):
            lines[index] = suggestion
            return None
        return "No applicable fix method"

    async def _get_file_content(self, filename: str, local: Path) -> str | None:
        if local.is_file():
            try:
                return local.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read local file", file=filename, error=str(e))
                return None
        return await self.github.get_file_content(filename)

    async def commit_fixes(self, results: list[AutoFixResult]) -> CommitResult | None:
        """
        Summarize applied fixes in a PR comment.

        The fixes stay in the workspace; pushing them is left to the workflow.
        """
        applied = [r for r in results if r.applied]
        if not applied:
            return None

        files = {r.file for r in applied}
        message = self.generate_commit_message(applied)
        logger.info("Auto-fixes ready", fixes=len(applied), files=len(files))

        try:
            await self.github.create_issue_comment(
                format_auto_fix_summary([r.issue for r in applied])
            )
        except GitHubError as e:
            logger.warning("Failed to post auto-fix summary comment", error=e.message)

        return CommitResult(message=message, files_changed=len(files))

    @staticmethod
    def generate_commit_message(fixes: list[AutoFixResult]) -> str:
        files = {fix.file for fix in fixes}
        message = f"🤖 Auto-fix: Applied {len(fixes)} code improvements"
        if len(files) > 1:
            message += f" across {len(files)} files"

        categories = sorted({fix.issue.category.value for fix in fixes})
        if len(categories) <= 3:
            message += f"\n\nCategories: {', '.join(categories)}"

        message += "\n\nGenerated by AI PR Reviewer"
        return message
