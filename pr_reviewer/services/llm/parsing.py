"""Turn raw model output into issues, plans and architectural results."""

import json
import re
from pathlib import PurePosixPath
from typing import Any

import structlog

from pr_reviewer.services.github.models import FileChange
from pr_reviewer.services.llm.models import (
    FALLBACK_PR_PLAN,
    ArchitecturalReviewResult,
    CodeIssue,
    IssueCategory,
    IssueSeverity,
    IssueType,
    PRPlan,
)

logger = structlog.get_logger()

JSON_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

# Numbered diffs rarely run past 50 lines; anything over 100 is almost
# certainly a file line number and would land the comment in the wrong place.
MAX_DIFF_LINE = 100
SUSPICIOUS_DIFF_LINE = 50

MULTIPLE_FILES = "Multiple Files"


def extract_json(text: str) -> Any:
    """
    Pull the JSON object out of a model response.

    Raises:
        json.JSONDecodeError: If no valid JSON can be found.
    """
    cleaned = text.strip()
    if not cleaned.startswith("{"):
        fence = JSON_FENCE_PATTERN.search(cleaned)
        if fence:
            cleaned = fence.group(1)
        else:
            obj = JSON_OBJECT_PATTERN.search(cleaned)
            if obj:
                cleaned = obj.group(0)
    return json.loads(cleaned)


def _issues_from_list(raw_issues: Any) -> list[CodeIssue]:
    if not isinstance(raw_issues, list):
        return []
    issues = []
    for item in raw_issues:
        try:
            issues.append(CodeIssue.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed issue", issue=item, error=str(e))
            continue
    return issues


def parse_ai_response(text: str, deterministic: bool = True) -> list[CodeIssue]:
    """Parse a review response; never raises on bad model output."""
    try:
        data = extract_json(text)
    except json.JSONDecodeError as e:
        logger.warning(
            "Failed to parse AI response as JSON",
            response=text[:500],
            error=str(e),
        )
        if deterministic:
            return []
        return extract_issues_from_text(text)

    if not isinstance(data, dict):
        logger.warning("AI response is not a JSON object", response=text[:500])
        return []

    return validate_and_fix_line_numbers(_issues_from_list(data.get("issues", [])))


def validate_and_fix_line_numbers(issues: list[CodeIssue]) -> list[CodeIssue]:
    """Drop issues whose line is clearly a file line rather than a diff line."""
    valid = []
    for issue in issues:
        if issue.line and issue.line > MAX_DIFF_LINE:
            logger.warning(
                "Skipping issue with file line number",
                file=issue.file,
                line=issue.line,
                message=issue.message,
            )
            continue
        if issue.line and issue.line > SUSPICIOUS_DIFF_LINE:
            logger.warning(
                "Issue line may be too high for a diff",
                file=issue.file,
                line=issue.line,
                message=issue.message,
            )
        valid.append(issue)

    if len(valid) != len(issues):
        logger.info(
            "Line number validation",
            valid=len(valid),
            skipped=len(issues) - len(valid),
        )
    return valid


def extract_issues_from_text(text: str) -> list[CodeIssue]:
    """Last-resort extraction from prose when the model ignored the JSON format."""
    issues = []
    for line in text.splitlines():
        lowered = line.lower()
        if "violation" in lowered or "issue" in lowered:
            issues.append(
                CodeIssue(
                    type=IssueType.WARNING,
                    category=IssueCategory.BEST_PRACTICE,
                    message=line.strip(),
                    description=line.strip(),
                    rule_id="unknown",
                    rule_name="Extracted from text response",
                    file="unknown",
                    severity=IssueSeverity.MEDIUM,
                )
            )
    return issues


def _str_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return []


def parse_pr_plan_response(text: str) -> PRPlan:
    try:
        data = extract_json(text)
        if not isinstance(data, dict):
            raise ValueError("PR plan is not a JSON object")
    except ValueError as e:
        # json.JSONDecodeError is a ValueError
        logger.warning("Failed to parse PR plan response", error=str(e))
        return FALLBACK_PR_PLAN

    return PRPlan(
        overview=data.get("overview") or "No overview provided",
        key_changes=_str_list(data.get("keyChanges") or data.get("key_changes")),
        risk_areas=_str_list(data.get("riskAreas") or data.get("risk_areas")),
        review_focus=_str_list(data.get("reviewFocus") or data.get("review_focus")),
        context=data.get("context") or "No additional context provided",
    )


def _confidence(value: Any) -> float:
    if value is None or value == "" or isinstance(value, bool):
        return 0.5
    try:
        return min(max(float(value), 0.0), 1.0)
    except (TypeError, ValueError):
        logger.info("Ignoring non-numeric confidence", confidence=str(value))
        return 0.5


def parse_architectural_response(text: str) -> ArchitecturalReviewResult:
    try:
        data = extract_json(text)
        if not isinstance(data, dict):
            raise ValueError("Architectural review is not a JSON object")
    except ValueError as e:
        logger.warning(
            "Failed to parse architectural review response",
            response=text[:500],
            error=str(e),
        )
        return ArchitecturalReviewResult(
            summary="Failed to generate architectural review",
            confidence=0.0,
        )

    def _objects(key: str, alt: str) -> list[dict[str, Any]]:
        value = data.get(key) or data.get(alt) or []
        return [v for v in value if isinstance(v, dict)] if isinstance(value, list) else []

    return ArchitecturalReviewResult(
        issues=_issues_from_list(data.get("issues", [])),
        duplications=_objects("duplications", "duplications"),
        logical_problems=_objects("logicalProblems", "logical_problems"),
        misplaced_code=_objects("misplacedCode", "misplaced_code"),
        summary=data.get("summary") or "No architectural summary provided",
        confidence=_confidence(data.get("confidence")),
    )


def assign_files_to_issues(issues: list[CodeIssue], files: list[FileChange]) -> list[CodeIssue]:
    """Make sure every issue from a batch points at one of the batch's files."""
    filenames = {f.filename for f in files}
    assigned = []
    for issue in issues:
        if issue.file in filenames:
            assigned.append(issue)
        elif len(files) == 1:
            assigned.append(issue.with_changes(file=files[0].filename))
        else:
            matched = match_issue_to_file(issue, files)
            if matched is not None:
                assigned.append(issue.with_changes(file=matched.filename))
            elif not issue.file or issue.file == "unknown":
                logger.warning("Could not determine file for issue", message=issue.message)
                assigned.append(issue.with_changes(file=MULTIPLE_FILES))
            else:
                assigned.append(issue)
    return assigned


def match_issue_to_file(issue: CodeIssue, files: list[FileChange]) -> FileChange | None:
    """Guess an issue's file from names or extensions mentioned in its text."""
    message = issue.message.lower()
    description = issue.description.lower()
    for file in files:
        filename = file.filename.lower()
        basename = PurePosixPath(filename).name
        if basename in message or basename in description:
            return file
        suffix = PurePosixPath(filename).suffix
        if suffix and (suffix in message or suffix in description):
            return file
    return None
