"""Mermaid flow diagrams that explain what a pull request does."""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

import structlog

from pr_reviewer.core.exceptions import LLMError
from pr_reviewer.services.github.models import FileChange
from pr_reviewer.services.llm.base import LLMProvider
from pr_reviewer.services.llm.models import PRPlan

logger = structlog.get_logger()

DEFAULT_MAX_FILES = 10

INCLUDE_FILE_TYPES = (
    ".ts",
    ".tsx",
    ".jsx",
    ".js",
    ".py",
    ".java",
    ".go",
    ".rs",
    ".cpp",
    ".c",
    ".cs",
    ".vue",
    ".svelte",
)
EXCLUDE_FILE_PARTS = (
    ".test.",
    ".spec.",
    ".d.ts",
    ".min.js",
    "bundle.",
    "dist/",
    "build/",
    "node_modules/",
    ".config.",
    "webpack.",
    "vite.",
    "rollup.",
)
EXCLUDE_BASENAMES = (
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "tsconfig.json",
    "readme.md",
    "license",
)

# Checked in order; the first kind with a matching keyword wins
PR_TYPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("feature", ("add", "create", "implement", "new feature", "introduce")),
    ("bugfix", ("fix", "bug", "resolve", "patch", "correct")),
    (
        "optimization",
        ("optimize", "performance", "speed up", "faster", "efficiency"),
    ),
    ("refactor", ("refactor", "restructure", "reorganize", "clean up", "simplify")),
    ("maintenance", ("update", "upgrade", "maintain", "dependency", "version")),
]

TITLE_PREFIXES = {
    "feature": "🆕 New Feature",
    "bugfix": "🐛 Bug Fix",
    "optimization": "⚡ Performance",
    "refactor": "🔧 Refactor",
    "maintenance": "🔄 Maintenance",
}

DESCRIPTIONS = {
    "feature": (
        "This flowchart shows the complete user journey for the new feature. Follow the flow "
        "to understand how users will discover, use, and benefit from this addition. "
    ),
    "bugfix": (
        "This flowchart illustrates how the bug fix improves the user experience, "
        "showing the corrected behavior that prevents the original issue. "
    ),
    "optimization": (
        "This flowchart demonstrates the performance improvements made to the system "
        "and where users will notice speed or efficiency gains. "
    ),
    "refactor": (
        "This flowchart shows how the code structure was improved while maintaining "
        "the same user functionality. "
    ),
    "maintenance": (
        "This flowchart explains what system components were updated and how these changes "
        "improve reliability, security, or compatibility. "
    ),
}
GENERIC_DESCRIPTION = (
    "This flowchart explains what happens when users interact with the changes in this PR. "
)

GENERIC_NODE_LABELS = (
    "function call",
    "process data",
    "handle request",
    "return response",
    "execute logic",
    "perform operation",
    "run code",
    "call method",
    "step 1",
    "step 2",
    "step 3",
)
EXPLANATORY_TERMS = (
    "user",
    "validate",
    "save",
    "create",
    "update",
    "delete",
    "send",
    "receive",
    "check",
    "verify",
    "analyze",
    "generate",
    "upload",
    "download",
    "authenticate",
    "authorize",
    "process",
    "transform",
    "calculate",
)

MIN_NODES = 5
MIN_DECISIONS = 2
MIN_CONDITIONAL_ARROWS = 2
MAX_LINE_LENGTH = 100

FLOWCHART_TD_PATTERN = re.compile(r"flowchart\s+TD\s*\n(.*?)(?=\n\n|\n```|\Z)", re.DOTALL)
FLOWCHART_PATTERN = re.compile(r"(flowchart\s+.*?)(?=\n\n|\n```|\Z)", re.DOTALL)
NODE_ID_PATTERN = re.compile(r"\b([A-Z]+)(?=\s*(?:-->|\[|\{|\(|$))")
ARROW_TARGET_PATTERN = re.compile(r"-->\s*(?:\|[^|]*\|\s*)?([A-Z]+)")
LABEL_PATTERN = re.compile(r"\[([^\]]+)\]")
UNSAFE_LABEL_CHARS = re.compile(r"[\[\]{}()\"'`]")


@dataclass
class FlowDiagram:
    title: str
    description: str
    mermaid_code: str
    diagram_type: str | None = None


def filter_relevant_files(
    files: list[FileChange], max_files: int = DEFAULT_MAX_FILES
) -> list[FileChange]:
    """Source files with a patch, minus tests, bundles and config."""
    relevant = []
    for file in files:
        filename = file.filename.lower()
        if any(part in filename for part in EXCLUDE_FILE_PARTS):
            continue
        if not filename.endswith(INCLUDE_FILE_TYPES):
            continue
        basename = PurePosixPath(filename).name
        if any(name in basename for name in EXCLUDE_BASENAMES):
            continue
        if not file.patch or not file.patch.strip():
            continue
        relevant.append(file)
    return relevant[:max_files]


def detect_pr_type(plan: PRPlan, files: list[FileChange]) -> str:
    text = " ".join(
        [
            plan.overview.lower(),
            " ".join(plan.key_changes).lower(),
            " ".join(f.filename.lower() for f in files),
        ]
    )
    for pr_type, keywords in PR_TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return pr_type
    return "unknown"


def extract_mermaid(text: str) -> str | None:
    """Pull the flowchart out of a model answer, fenced or not."""
    match = FLOWCHART_TD_PATTERN.search(text)
    if match and match.group(1):
        return f"flowchart TD\n{match.group(1)}"
    match = FLOWCHART_PATTERN.search(text)
    if match:
        return match.group(1)
    return None


def count_mermaid_nodes(code: str) -> int:
    nodes: set[str] = set()
    for line in code.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("flowchart"):
            continue
        nodes.update(NODE_ID_PATTERN.findall(stripped))
        nodes.update(ARROW_TARGET_PATTERN.findall(stripped))
    return len(nodes)


def _explanatory_problem(code: str) -> str | None:
    text = code.lower()
    if any(label in text for label in GENERIC_NODE_LABELS):
        return "generic node labels"
    if not any(term in text for term in EXPLANATORY_TERMS):
        return "no explanatory terms"
    decisions = len(re.findall(r"\{[^}]*\}", text))
    if decisions < MIN_DECISIONS:
        return f"only {decisions} decision points"
    conditionals = len(re.findall(r"\|[^|]*\|", text))
    if conditionals < MIN_CONDITIONAL_ARROWS:
        return f"only {conditionals} conditional arrows"
    arrows = text.count("-->")
    nodes = count_mermaid_nodes(code)
    if arrows <= nodes:
        return f"too linear ({arrows} arrows for {nodes} nodes)"
    return None


def mermaid_problem(code: str) -> str | None:
    """Why ``code`` would render badly or explain little; ``None`` if it is fine."""
    trimmed = code.strip()
    if not trimmed.startswith("flowchart"):
        return "does not start with flowchart"
    if "-->" not in trimmed:
        return "no flow arrows"
    if "```" in trimmed:
        return "contains markdown code blocks"
    lines = trimmed.split("\n")
    if len([line for line in lines if line.strip()]) < 2:
        return "too few lines"
    if trimmed.count("[") != trimmed.count("]"):
        return "unbalanced brackets"
    lowered = trimmed.lower()
    if any(word in lowered for word in ("this diagram", "explanation", "represents")):
        return "contains explanatory text"
    for line in lines:
        label = LABEL_PATTERN.search(line)
        if label and UNSAFE_LABEL_CHARS.search(label.group(1)):
            return f"node label {label.group(1)!r} contains characters that break rendering"
    if any(len(line.strip()) > MAX_LINE_LENGTH for line in lines):
        return "contains very long lines"
    nodes = count_mermaid_nodes(trimmed)
    if nodes < MIN_NODES:
        return f"only {nodes} steps"
    return _explanatory_problem(trimmed)


def generate_title(plan: PRPlan, pr_type: str) -> str:
    overview = plan.overview[:50] + ("..." if len(plan.overview) > 50 else "")
    prefix = TITLE_PREFIXES.get(pr_type, "What This PR Does")
    return f"{prefix}: {overview}"


def generate_description(pr_type: str, file_count: int) -> str:
    description = DESCRIPTIONS.get(pr_type, GENERIC_DESCRIPTION)
    if file_count == 1:
        return description + (
            "The change affects one key component, delivering a focused improvement."
        )
    if file_count <= 3:
        return description + (
            f"The changes span {file_count} components, showing how they coordinate "
            "to deliver the enhancement."
        )
    return description + (
        f"The changes involve {file_count} components, demonstrating the comprehensive "
        "scope of this update."
    )


class FlowDiagramGenerator:
    """Asks the model for a flowchart of the PR and keeps it only if it passes checks."""

    def __init__(self, provider: LLMProvider, max_files: int = DEFAULT_MAX_FILES) -> None:
        self.provider = provider
        self.max_files = max_files

    async def generate(self, files: list[FileChange], plan: PRPlan) -> FlowDiagram | None:
        relevant = filter_relevant_files(files, self.max_files)
        if not relevant:
            logger.info("No relevant files for flow diagram")
            return None

        pr_type = detect_pr_type(plan, relevant)
        logger.info("Generating flow diagram", pr_type=pr_type, files=len(relevant))
        try:
            response = await self.provider.generate_flow_diagram(relevant, plan, pr_type)
        except LLMError as e:
            logger.warning("Flow diagram generation failed", error=e.message)
            return None

        code = extract_mermaid(response)
        if code is None:
            logger.warning("No Mermaid flowchart in response", response=response[:200])
            return None
        problem = mermaid_problem(code)
        if problem:
            logger.warning("Generated Mermaid code failed validation", reason=problem)
            return None

        return FlowDiagram(
            title=generate_title(plan, pr_type),
            description=generate_description(pr_type, len(relevant)),
            mermaid_code=code.strip(),
            diagram_type=pr_type if pr_type != "unknown" else None,
        )
