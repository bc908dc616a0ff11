"""
Markdown rendering for inline, summary, architectural and auto-fix comments.

Issue line numbers are numbered-diff lines; anything that links into the
file converts them through ``DiffLineMapper`` first.
"""

import re
from collections import defaultdict
from pathlib import PurePosixPath

import structlog

from pr_reviewer.services.github.models import FileChange, PRContext
from pr_reviewer.services.llm.models import (
    CodeIssue,
    IssueCategory,
    PRPlan,
    ReviewResult,
    ReviewType,
)
from pr_reviewer.services.llm.parsing import MULTIPLE_FILES
from pr_reviewer.services.review.diff_parser import DiffLineMapper
from pr_reviewer.services.review.flow_diagram import FlowDiagram

logger = structlog.get_logger()

FOOTER = "Generated by AI PR Reviewer"
MAX_SUMMARY_ISSUES = 15
MAX_SUGGESTION_LINES = 10

AUTO_FIX_CATEGORIES = (IssueCategory.RULE_VIOLATION, IssueCategory.BEST_PRACTICE)

ISSUE_ICONS = {
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "suggestion": "💡",
}

STATUS_ICONS = {
    "passed": "✅",
    "needs_attention": "⚠️",
}

SEVERITY_ICONS = {
    "high": "🚨",
    "medium": "⚠️",
    "low": "ℹ️",
}

RULE_TYPE_EMOJIS = {
    "always": "🔒",
    "auto_attached": "📎",
    "agent_requested": "🤖",
    "manual": "👤",
}

CATEGORY_ICONS = {
    "bug": "🐛",
    "security": "🔒",
    "performance": "⚡",
    "rule_violation": "📏",
    "best_practice": "💡",
    "maintainability": "🔧",
    "documentation": "📝",
    "architecture": "🏗️",
    "i18n": "🌍",
    "api_design": "🔌",
    "data_flow": "🌊",
    "business_logic": "💼",
    "duplication": "📑",
    "misplaced_code": "📦",
    "logical_flow": "🔀",
}

CATEGORY_NAMES = {
    "bug": "Bugs",
    "security": "Security Issues",
    "performance": "Performance Issues",
    "rule_violation": "Rule Violations",
    "best_practice": "Best Practices",
    "maintainability": "Maintainability",
    "documentation": "Documentation & Typos (Critical)",
    "architecture": "Architecture & Design",
    "i18n": "Internationalization",
    "api_design": "API Design",
    "data_flow": "Data Flow & State",
    "business_logic": "Business Logic",
    "duplication": "Code Duplication",
    "misplaced_code": "Misplaced Code",
    "logical_flow": "Logical Flow",
}

LANGUAGES = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "py": "python",
    "java": "java",
    "go": "go",
    "rs": "rust",
    "cpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "c": "c",
    "cs": "csharp",
    "php": "php",
    "rb": "ruby",
    "swift": "swift",
    "kt": "kotlin",
    "vue": "vue",
    "svelte": "svelte",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "sass": "scss",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "xml": "xml",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
}

CODE_PATTERNS = [
    re.compile(p, re.MULTILINE)
    for p in (
        r"^\s*[a-zA-Z_$][a-zA-Z0-9_$]*\s*[=:]",
        r"^\s*[a-zA-Z_$][a-zA-Z0-9_$]*\s*\(",
        r"^\s*[{}\[\]]",
        r"^\s*(import|export|function|class|interface|type|def|return)\s+",
        r"^\s*(const|let|var)\s+",
        r"^\s*(if|while|for)\s*\(",
        r"^\s*(/\*|//|#)",
        r";\s*$",
        r"^\s*<[a-zA-Z]",
        r"^\s*\.",
    )
]


def _value(enum_or_str: object) -> str:
    return str(getattr(enum_or_str, "value", enum_or_str))


def get_issue_icon(issue_type: object) -> str:
    return ISSUE_ICONS.get(_value(issue_type), "🔍")


def get_status_icon(status: str) -> str:
    return STATUS_ICONS.get(status, "🔍")


def get_severity_icon(severity: object) -> str:
    return SEVERITY_ICONS.get(_value(severity), "ℹ️")


def get_rule_type_emoji(rule_type: object) -> str:
    return RULE_TYPE_EMOJIS.get(_value(rule_type), "📝")


def get_category_icon(category: object) -> str:
    return CATEGORY_ICONS.get(_value(category), "🔍")


def format_category_name(category: object) -> str:
    return CATEGORY_NAMES.get(_value(category), "Other")


def format_status(status: str) -> str:
    return status.replace("_", " ").upper()


def is_code_suggestion(suggestion: str) -> bool:
    """
    Guess whether a suggestion is code (rendered in a fenced block) or prose.

    A suggestion with any code-looking line is code. Advice such as
    "Consider caching this" is not.
    """
    return any(pattern.search(suggestion) for pattern in CODE_PATTERNS)


def get_language_from_file(filename: str) -> str:
    """Fence language for syntax highlighting; ``text`` when unknown."""
    return LANGUAGES.get(PurePosixPath(filename).suffix.lstrip(".").lower(), "text")


def group_issues_by_category(issues: list[CodeIssue]) -> dict[str, list[CodeIssue]]:
    grouped: dict[str, list[CodeIssue]] = defaultdict(list)
    for issue in issues:
        grouped[_value(issue.category)].append(issue)
    return dict(grouped)


def group_issues_by_file(issues: list[CodeIssue]) -> dict[str, list[CodeIssue]]:
    grouped: dict[str, list[CodeIssue]] = defaultdict(list)
    for issue in issues:
        grouped[issue.file].append(issue)
    return dict(grouped)


def is_small_fix(issue: CodeIssue) -> bool:
    """A fix GitHub can offer as a one-click suggestion."""
    if not issue.fixed_code or issue.original_code is None:
        return False
    return len(issue.fixed_code.split("\n")) <= MAX_SUGGESTION_LINES


# =============================================================================
# Inline comments
# =============================================================================


def format_suggested_change(issue: CodeIssue) -> str:
    language = get_language_from_file(issue.file)
    if not issue.fixed_code or issue.original_code is None:
        return f"**💡 Suggested Fix:**\n```{language}\n{issue.fixed_code or ''}\n```\n\n"

    return (
        "**💡 Suggested Fix:**\n\n"
        f"```suggestion\n{issue.fixed_code}\n```\n\n"
        "> 💡 **Quick Apply**: This fix can be committed directly using the "
        '"Commit suggestion" button above.\n\n'
    )


def format_fix_section(issue: CodeIssue) -> str:
    language = get_language_from_file(issue.file)
    if issue.fixed_code:
        if is_small_fix(issue):
            return format_suggested_change(issue)
        return f"**💡 Suggested Fix:**\n```{language}\n{issue.fixed_code}\n```\n\n"
    if issue.suggestion:
        if is_code_suggestion(issue.suggestion):
            return f"**💡 Suggested Fix:**\n```{language}\n{issue.suggestion}\n```\n\n"
        return f"**💡 Suggestion:**\n{issue.suggestion}\n\n"
    return ""


def format_action_buttons(issue: CodeIssue, enable_auto_fix: bool = False) -> str:
    buttons = []
    if (
        enable_auto_fix
        and (issue.fixed_code or issue.suggestion)
        and issue.category in AUTO_FIX_CATEGORIES
    ):
        buttons.append("🤖 Auto-Fix Available")

    if not buttons:
        return ""
    lines = ["**🔧 Actions:**"] + [f"- {button}" for button in buttons]
    return "\n".join(lines) + "\n\n"


def format_inline_comment_body(
    issues: list[CodeIssue],
    enable_suggestions: bool = True,
    enable_auto_fix: bool = False,
) -> str:
    """
    Render every issue reported at one location as a single comment.

    The first issue is shown in full; the rest are listed in a collapsed
    section.
    """
    if not issues:
        return "## 🤖 Code Review Finding\n\nNo issues detected."

    primary = issues[0]
    category_icon = get_category_icon(primary.category)
    type_icon = get_issue_icon(primary.type)
    severity = _value(primary.severity)

    body = f"## {category_icon} Code Review Finding\n\n"
    body += (
        f"{type_icon} **{_value(primary.type).upper()}** | "
        f"{category_icon} *{format_category_name(primary.category)}*\n\n"
    )
    body += f"### {primary.message}\n\n"
    body += f"{primary.description}\n\n"
    body += f"**{get_severity_icon(severity)} Severity:** {severity.upper()}\n\n"

    if primary.category == IssueCategory.RULE_VIOLATION:
        body += f"**📋 Rule:** `{primary.rule_id}` - {primary.rule_name}\n\n"
    elif primary.rule_name:
        body += f"**🔍 Category:** {primary.rule_name}\n\n"

    if enable_suggestions and (primary.suggestion or primary.fixed_code):
        body += format_fix_section(primary)

    body += format_action_buttons(primary, enable_auto_fix)

    if len(issues) > 1:
        body += (
            "<details>\n<summary><strong>Additional issues at this location "
            f"({len(issues) - 1})</strong></summary>\n\n"
        )
        for issue in issues[1:]:
            body += (
                f"- {get_issue_icon(issue.type)} {get_category_icon(issue.category)} "
                f"**{issue.message}** *({_value(issue.type)})*\n"
            )
        body += "\n</details>\n\n"

    body += f"---\n*{FOOTER}*"
    return body


# =============================================================================
# Links
# =============================================================================


def generate_file_url(
    context: PRContext,
    file: str,
    diff_line: int | None,
    file_changes: list[FileChange],
) -> str:
    """
    Link to ``file`` at the head commit, anchored at the file line that
    ``diff_line`` maps to. Files outside the PR link to its files page.
    """
    base = f"https://github.com/{context.owner}/{context.repo}"
    change = next((fc for fc in file_changes if fc.filename == file), None)
    if change is None:
        logger.debug("File not in PR changes, linking to files page", file=file)
        return f"{base}/pull/{context.pull_number}/files"

    blob_url = f"{base}/blob/{context.sha}/{file}"
    if diff_line and diff_line > 0 and change.patch:
        file_line = DiffLineMapper(change.patch).to_file_line(diff_line)
        if file_line and file_line > 0:
            return f"{blob_url}#L{file_line}"
    return blob_url


# =============================================================================
# Summary comment
# =============================================================================


def _overview_table(result: ReviewResult) -> str:
    status = f"{get_status_icon(result.status)} {format_status(result.status)}"
    architectural = len(result.architectural_issues)
    detailed = len(result.detailed_issues)

    rows = [
        "| Metric | Value |",
        "|--------|-------|",
        f"| Files Reviewed | {result.files_reviewed}/{result.total_files} |",
        f"| Issues Found | {len(result.issues)} |",
    ]
    if architectural and detailed:
        rows.append(f"| - Architectural | {architectural} |")
        rows.append(f"| - Detailed | {detailed} |")
    elif architectural:
        rows.append(f"| - Architectural Only | {architectural} |")
    elif detailed:
        rows.append(f"| - Detailed Only | {detailed} |")
    rows.append(f"| Rules Applied | {len(result.rules_applied)} |")
    rows.append(f"| Status | {status} |")
    return "\n".join(rows) + "\n\n"


def format_flow_diagram_section(diagram: FlowDiagram) -> str:
    title = diagram.title if diagram.diagram_type else "What This PR Does - Flow Explanation"
    body = f"### 🌊 **{title}**\n\n"
    body += f"{diagram.description}\n\n"
    body += f"```mermaid\n{diagram.mermaid_code.strip()}\n```\n\n"
    body += "<details>\n<summary>💡 How to Read This Diagram</summary>\n\n"
    body += (
        "This flow diagram tells the story of what happens when users interact with the "
        "changes in this PR. Follow the arrows from start to finish.\n\n"
    )
    body += "**Visual Guide:**\n"
    body += "- **📋 Rectangles** `[]`: Actions that happen or processes that run\n"
    body += "- **💭 Diamonds** `{}`: Decision points where the system chooses what to do next\n"
    body += "- **🎯 Rounded rectangles** `()`: Starting points or final outcomes\n"
    body += "- **➡️ Arrows** `-->`: Shows what happens next in the flow\n"
    body += "- **🏷️ Arrow labels** `-->|condition|`: Explains when a specific path is taken\n\n"
    body += "</details>\n\n"
    return body


def format_summary_comment_body(
    result: ReviewResult,
    file_changes: list[FileChange],
    context: PRContext,
    summary_format: str = "detailed",
    plan: PRPlan | None = None,
    flow_diagram: FlowDiagram | None = None,
) -> str:
    status_icon = get_status_icon(result.status)

    body = "## 🤖 AI PR Review Summary\n\n"
    body += f"### {status_icon} **Overall Status: {format_status(result.status)}**\n\n"

    if plan and plan.key_changes:
        body += "### 📝 **What Changed**\n"
        body += "".join(f"• {change}\n" for change in plan.key_changes)
        body += "\n"

    body += "### 📊 **Review Overview**\n"
    body += _overview_table(result)

    if flow_diagram:
        body += format_flow_diagram_section(flow_diagram)

    if summary_format in ("brief", "detailed") and result.summary:
        body += f"### 🧠 **AI Summary**\n{result.summary}\n\n"

    code_issues = [i for i in result.issues if i.review_type != ReviewType.ARCHITECTURAL]
    if code_issues and len(code_issues) > MAX_SUMMARY_ISSUES:
        body += "### 📋 **Issue Summary**\n"
        body += (
            "*Too many issues to display individually. "
            "Please check inline comments for details.*\n\n"
        )
    elif code_issues and summary_format == "detailed":
        body += "### 📋 **Code Issues**\n"
        body += (
            "*Click on each issue link below to see full details and suggestions "
            "in the inline comments.*\n\n"
        )
        for category, category_issues in group_issues_by_category(code_issues).items():
            body += (
                f"**{get_category_icon(category)} {format_category_name(category)} "
                f"({len(category_issues)})**\n"
            )
            for issue in category_issues:
                url = generate_file_url(context, issue.file, issue.line, file_changes)
                body += (
                    f"- {get_issue_icon(issue.type)} **[{issue.file}:{issue.line or '?'}]"
                    f"({url})** - {issue.message}\n"
                )
            body += "\n"

    if result.rules_applied:
        body += "### 📝 **Applied Rules**\n"
        body += (
            f"<details>\n<summary>{len(result.rules_applied)} Cursor rules were applied"
            "</summary>\n\n"
        )
        for rule in result.rules_applied:
            line = f"- {get_rule_type_emoji(rule.type)} `{rule.id}`"
            if rule.description:
                line += f" - {rule.description}"
            body += line + "\n"
        body += "\n</details>\n\n"

    body += f"---\n*{FOOTER}*"
    return body


def format_architectural_comment_body(
    issues: list[CodeIssue],
    file_changes: list[FileChange],
    context: PRContext,
) -> str:
    count = len(issues)
    body = "## 🏗️ Architectural Review\n\n"
    body += (
        "*This comment focuses on high-level code structure, design patterns, and "
        "maintainability concerns that affect the overall codebase.*\n\n"
    )
    body += "### 📊 Overview\n"
    body += (
        f"Found **{count}** architectural concern{'s' if count != 1 else ''} "
        "that may impact long-term maintainability.\n\n"
    )

    for category, category_issues in group_issues_by_category(issues).items():
        body += f"### {get_category_icon(category)} {format_category_name(category)}\n\n"
        for index, issue in enumerate(category_issues, start=1):
            body += f"#### {index}. {get_severity_icon(issue.severity)} {issue.message}\n\n"

            if issue.description and issue.description != issue.message:
                body += f"**What's the concern?**\n{issue.description}\n\n"

            if len(issue.related_files) > 1:
                body += "**Affected files:**\n"
                for file in issue.related_files:
                    body += f"- [{file}]({generate_file_url(context, file, None, file_changes)})\n"
                body += "\n"
            elif issue.file and issue.file not in (MULTIPLE_FILES, "unknown"):
                url = generate_file_url(context, issue.file, issue.line, file_changes)
                body += f"**File:** [{issue.file}]({url})\n\n"

            if issue.suggestion:
                body += f"**💡 Recommendation:**\n{issue.suggestion}\n\n"

            body += "---\n\n"

    body += "### 🎯 Next Steps\n\n"
    body += (
        "These architectural concerns are suggestions for improving code quality and "
        "maintainability. Consider addressing them to keep the codebase easy to "
        "understand and extend.\n\n"
    )
    body += f"*{FOOTER} - Architectural Analysis*"
    return body


def format_auto_fix_summary(fixed_issues: list[CodeIssue]) -> str:
    """Render the comment listing fixes written to the workspace."""
    by_file = group_issues_by_file(fixed_issues)

    body = "## 🤖 Auto-Fix Summary\n\n"
    body += (
        f"✅ **{len(fixed_issues)} fixes applied** across **{len(by_file)} files**\n\n"
    )
    body += "### 📝 Files Modified:\n"
    for filename, file_issues in by_file.items():
        body += f"- **{filename}** ({len(file_issues)} fixes)\n"

    body += "\n### 🔧 Fix Categories:\n"
    for category, category_issues in group_issues_by_category(fixed_issues).items():
        body += f"- **{format_category_name(category)}**: {len(category_issues)}\n"

    body += (
        "\n> 💡 **Note**: These fixes have been automatically applied to improve code "
        "quality based on the review findings.\n"
    )
    body += f"\n---\n*🤖 {FOOTER} Auto-Fix*"
    return body


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def generate_fallback_summary(issues: list[CodeIssue], files_reviewed: int) -> str:
    """Plain summary used when the model returns nothing."""
    if not issues:
        files = "file is" if files_reviewed == 1 else "files are"
        return (
            f"✅ **Excellent work!** All {files_reviewed} {files} clean with no issues "
            "detected. The code follows best practices and appears ready for deployment."
        )

    errors = sum(1 for i in issues if _value(i.type) == "error")
    warnings = sum(1 for i in issues if _value(i.type) == "warning")
    critical = sum(1 for i in issues if _value(i.severity) == "high")

    summary = (
        f"📋 **Review Summary:** Found {_plural(len(issues), 'issue')} across "
        f"{_plural(files_reviewed, 'file')}"
    )
    parts = []
    if errors:
        parts.append(_plural(errors, "error"))
    if warnings:
        parts.append(_plural(warnings, "warning"))
    if parts:
        summary += f" ({', '.join(parts)})"

    if critical or errors:
        summary += ". 🚨 **Action Required** - Critical issues need to be addressed before merging."
    elif warnings:
        summary += (
            ". ⚠️ **Review Recommended** - Consider addressing warnings for improved code quality."
        )
    else:
        summary += ". 💡 **Optional Improvements** - All issues are informational suggestions."
    return summary
