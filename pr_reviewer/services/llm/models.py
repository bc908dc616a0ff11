import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal, TypeVar

import structlog

from pr_reviewer.services.github.models import FileChange, PRContext
from pr_reviewer.services.rules.parser import CursorRule, CursorRulesConfig

logger = structlog.get_logger()

ReviewStatus = Literal["passed", "needs_attention", "failed"]


class IssueType(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUGGESTION = "suggestion"


class IssueCategory(str, Enum):
    RULE_VIOLATION = "rule_violation"
    BUG = "bug"
    SECURITY = "security"
    PERFORMANCE = "performance"
    BEST_PRACTICE = "best_practice"
    MAINTAINABILITY = "maintainability"
    DOCUMENTATION = "documentation"
    ARCHITECTURE = "architecture"
    I18N = "i18n"
    API_DESIGN = "api_design"
    DATA_FLOW = "data_flow"
    BUSINESS_LOGIC = "business_logic"
    DUPLICATION = "duplication"
    MISPLACED_CODE = "misplaced_code"
    LOGICAL_FLOW = "logical_flow"


class IssueSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReviewType(str, Enum):
    ARCHITECTURAL = "architectural"
    DETAILED = "detailed"


E = TypeVar("E", bound=Enum)

_LEADING_INT = re.compile(r"^\s*(\d+)")


def _coerce_enum(enum_cls: type[E], value: Any, default: E, field_name: str) -> E:
    """Map a model-supplied value onto ``enum_cls``, falling back to ``default``."""
    if value is None or value == "":
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.info(
            "Unknown issue field value, using default",
            field=field_name,
            value=str(value),
            default=default.value,
        )
        return default


def _optional_int(value: Any, field_name: str = "line") -> int | None:
    """Line-like values; ranges such as ``"12-15"`` keep their first number."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT.match(str(value))
    if match is None:
        logger.info("Ignoring non-numeric issue position", field=field_name, value=str(value))
        return None
    return int(match.group(1))


@dataclass
class CodeIssue:
    """A single finding reported by the model."""

    type: IssueType
    category: IssueCategory
    message: str
    description: str
    rule_id: str = ""
    rule_name: str = ""
    file: str = ""
    line: int | None = None
    column: int | None = None
    end_line: int | None = None
    end_column: int | None = None
    severity: IssueSeverity = IssueSeverity.MEDIUM
    suggestion: str | None = None
    fixed_code: str | None = None
    related_files: list[str] = field(default_factory=list)
    review_type: ReviewType | None = None
    original_code: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CodeIssue":
        """
        Build an issue from the model's JSON, which uses camelCase keys.

        Unknown types, categories and severities fall back to defaults, and
        unparseable positions become ``None``.

        Raises:
            KeyError: If ``message`` is missing.
            ValueError: If ``data`` is not an object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Issue must be an object, got {type(data).__name__}")

        message = str(data["message"])
        related = data.get("relatedFiles") or data.get("related_files") or []
        return cls(
            type=_coerce_enum(IssueType, data.get("type"), IssueType.SUGGESTION, "type"),
            category=_coerce_enum(
                IssueCategory, data.get("category"), IssueCategory.BEST_PRACTICE, "category"
            ),
            message=message,
            description=str(data.get("description") or message),
            rule_id=str(data.get("ruleId") or data.get("rule_id") or ""),
            rule_name=str(data.get("ruleName") or data.get("rule_name") or ""),
            file=str(data.get("file") or ""),
            line=_optional_int(data.get("line")),
            column=_optional_int(data.get("column"), "column"),
            end_line=_optional_int(data.get("endLine", data.get("end_line")), "end_line"),
            end_column=_optional_int(data.get("endColumn", data.get("end_column")), "end_column"),
            severity=_coerce_enum(
                IssueSeverity, data.get("severity"), IssueSeverity.MEDIUM, "severity"
            ),
            suggestion=data.get("suggestion") or None,
            fixed_code=data.get("fixedCode") or data.get("fixed_code") or None,
            related_files=[str(f) for f in related],
        )

    def with_changes(self, **changes: Any) -> "CodeIssue":
        return replace(self, **changes)


@dataclass
class PRPlan:
    """The model's high-level reading of the PR, used to steer batch reviews."""

    overview: str
    key_changes: list[str] = field(default_factory=list)
    risk_areas: list[str] = field(default_factory=list)
    review_focus: list[str] = field(default_factory=list)
    context: str = ""


FALLBACK_PR_PLAN = PRPlan(
    overview="Failed to generate PR plan overview",
    key_changes=["Unable to analyze changes"],
    risk_areas=["Unknown risk areas"],
    review_focus=["General code review"],
    context="PR plan generation failed",
)


@dataclass
class ArchitecturalReviewResult:
    issues: list[CodeIssue] = field(default_factory=list)
    duplications: list[dict[str, Any]] = field(default_factory=list)
    logical_problems: list[dict[str, Any]] = field(default_factory=list)
    misplaced_code: list[dict[str, Any]] = field(default_factory=list)
    summary: str = ""
    confidence: float = 0.0


@dataclass
class ReviewContext:
    """Inputs for the summary prompt."""

    pr_context: PRContext
    file_changes: list[FileChange]
    rules_config: CursorRulesConfig


@dataclass
class ReviewResult:
    """Outcome of one review run."""

    summary: str
    issues: list[CodeIssue] = field(default_factory=list)
    files_reviewed: int = 0
    total_files: int = 0
    rules_applied: list[CursorRule] = field(default_factory=list)
    status: ReviewStatus = "passed"

    @property
    def architectural_issues(self) -> list[CodeIssue]:
        return [i for i in self.issues if i.review_type == ReviewType.ARCHITECTURAL]

    @property
    def detailed_issues(self) -> list[CodeIssue]:
        return [i for i in self.issues if i.review_type == ReviewType.DETAILED]
