from unittest.mock import AsyncMock, MagicMock

import pytest

from pr_reviewer.core.exceptions import LLMError
from pr_reviewer.services.github.models import FileChange, FileStatus
from pr_reviewer.services.llm.models import PRPlan
from pr_reviewer.services.review.flow_diagram import (
    FlowDiagramGenerator,
    count_mermaid_nodes,
    detect_pr_type,
    extract_mermaid,
    filter_relevant_files,
    generate_description,
    generate_title,
    mermaid_problem,
)

FLOWCHART = """flowchart TD
    A[User submits order] --> B{Is input valid?}
    B -->|Yes| C[Save order record]
    B -->|No| D[Show validation error]
    D --> A
    C --> E{Payment approved?}
    E -->|Yes| F[Send confirmation]
    E -->|No| D"""


def changed(filename: str, patch: str | None = "@@ -1 +1 @@\n-a\n+b") -> FileChange:
    return FileChange(filename=filename, status=FileStatus.MODIFIED, patch=patch)


class TestFileSelection:
    """Tests for choosing which files a diagram describes."""

    def test_filter_relevant_files(self) -> None:
        """Test tests, bundles, manifests and patchless files are left out."""
        files = [
            changed("src/orders.py"),
            changed("src/orders.test.ts"),
            changed("types/index.d.ts"),
            changed("web/package.json"),
            changed("dist/app.js"),
            changed("docs/guide.md"),
            changed("src/cart.ts", patch=None),
            changed("src/Checkout.tsx"),
        ]

        relevant = filter_relevant_files(files)

        assert [f.filename for f in relevant] == ["src/orders.py", "src/Checkout.tsx"]

    def test_filter_respects_limit(self) -> None:
        """Test only the first ``max_files`` relevant files are kept."""
        files = [changed(f"src/m{i}.py") for i in range(5)]

        assert len(filter_relevant_files(files, max_files=3)) == 3

    @pytest.mark.parametrize(
        ("overview", "filename", "expected"),
        [
            ("Add a checkout page", "src/checkout.py", "feature"),
            ("Fix crash on empty cart", "src/cart.py", "bugfix"),
            ("Speed up search with caching", "src/search.py", "optimization"),
            ("Simplify the order service", "src/orders.py", "refactor"),
            ("Bump requests to the latest version", "requirements.txt", "maintenance"),
            ("Tweak wording", "src/copy.py", "unknown"),
        ],
    )
    def test_detect_pr_type(self, overview: str, filename: str, expected: str) -> None:
        """Test the first matching kind of change wins."""
        plan = PRPlan(overview=overview)

        assert detect_pr_type(plan, [changed(filename)]) == expected

    def test_detect_pr_type_uses_key_changes(self) -> None:
        """Test key changes count towards detection."""
        plan = PRPlan(overview="Checkout work", key_changes=["Resolve race in payment"])

        assert detect_pr_type(plan, [changed("src/pay.py")]) == "bugfix"


class TestMermaidValidation:
    """Tests for extracting and checking model-written flowcharts."""

    def test_extract_from_fenced_answer(self) -> None:
        """Test the flowchart is pulled out of a fenced block."""
        answer = f"Here you go:\n\n```mermaid\n{FLOWCHART}\n```\n"

        code = extract_mermaid(answer)

        assert code is not None
        assert code.startswith("flowchart TD\n    A[User submits order]")
        assert "```" not in code
        assert code.rstrip().endswith("E -->|No| D")

    def test_extract_without_flowchart(self) -> None:
        """Test answers without a flowchart yield nothing."""
        assert extract_mermaid("graph LR\n    A --> B") is None

    def test_count_nodes(self) -> None:
        """Test nodes are counted once whether they are sources or targets."""
        assert count_mermaid_nodes(FLOWCHART) == 6

    def test_valid_flowchart(self) -> None:
        """Test a branching flowchart with clear labels passes."""
        assert mermaid_problem(FLOWCHART) is None

    @pytest.mark.parametrize(
        ("code", "reason"),
        [
            ("graph TD\n    A --> B", "does not start with flowchart"),
            ("flowchart TD\n    A[Start]", "no flow arrows"),
            ("flowchart TD\n    A[Start --> B[End]", "unbalanced brackets"),
            (
                "flowchart TD\n    A[User says \"hi\"] --> B[Save]",
                "contains characters that break rendering",
            ),
            ("flowchart TD\n    A[User] --> B[Save]", "only 2 steps"),
            (
                "flowchart TD\n    A[User opens app] --> B[Save draft]\n"
                "    B --> C[Send mail]\n    C --> D[Check inbox]\n    D --> E[Verify link]",
                "only 0 decision points",
            ),
        ],
    )
    def test_rejected_flowcharts(self, code: str, reason: str) -> None:
        """Test flowcharts that would render badly or explain little are rejected."""
        problem = mermaid_problem(code)

        assert problem is not None
        assert reason in problem

    def test_generic_labels_rejected(self) -> None:
        """Test placeholder labels such as "step 1" are rejected."""
        code = FLOWCHART.replace("Save order record", "Step 1")

        assert mermaid_problem(code) == "generic node labels"


class TestDiagramText:
    """Tests for the heading and description around a diagram."""

    def test_title_truncates_overview(self) -> None:
        """Test long overviews are cut at fifty characters."""
        plan = PRPlan(overview="x" * 60)

        assert generate_title(plan, "feature") == "🆕 New Feature: " + "x" * 50 + "..."

    def test_title_for_unknown_kind(self) -> None:
        """Test unknown kinds use the generic prefix."""
        assert generate_title(PRPlan(overview="Tidy"), "unknown") == "What This PR Does: Tidy"

    @pytest.mark.parametrize(
        ("count", "ending"),
        [
            (1, "one key component, delivering a focused improvement."),
            (3, "span 3 components"),
            (7, "involve 7 components"),
        ],
    )
    def test_description_mentions_scope(self, count: int, ending: str) -> None:
        """Test the description reflects how many files are involved."""
        description = generate_description("bugfix", count)

        assert description.startswith("This flowchart illustrates how the bug fix")
        assert ending in description


class TestFlowDiagramGenerator:
    """Tests for the diagram generator."""

    @pytest.fixture
    def provider(self) -> MagicMock:
        provider = MagicMock()
        provider.generate_flow_diagram = AsyncMock(return_value=f"```mermaid\n{FLOWCHART}\n```")
        return provider

    @pytest.mark.asyncio
    async def test_generate(self, provider: MagicMock) -> None:
        """Test a valid answer becomes a typed diagram."""
        plan = PRPlan(overview="Add order checkout")
        files = [changed("src/orders.py"), changed("tests/test_orders.spec.py")]

        diagram = await FlowDiagramGenerator(provider).generate(files, plan)

        assert diagram is not None
        assert diagram.diagram_type == "feature"
        assert diagram.title == "🆕 New Feature: Add order checkout"
        assert diagram.mermaid_code == FLOWCHART
        assert "one key component" in diagram.description
        sent_files, sent_plan, pr_type = provider.generate_flow_diagram.await_args.args
        assert [f.filename for f in sent_files] == ["src/orders.py"]
        assert sent_plan is plan
        assert pr_type == "feature"

    @pytest.mark.asyncio
    async def test_unknown_kind_untyped(self, provider: MagicMock) -> None:
        """Test diagrams of unrecognised changes carry no type."""
        diagram = await FlowDiagramGenerator(provider).generate(
            [changed("src/copy.py")], PRPlan(overview="Tweak wording")
        )

        assert diagram is not None
        assert diagram.diagram_type is None

    @pytest.mark.asyncio
    async def test_no_relevant_files(self, provider: MagicMock) -> None:
        """Test nothing is requested when only non-source files changed."""
        diagram = await FlowDiagramGenerator(provider).generate(
            [changed("README.md")], PRPlan(overview="Docs")
        )

        assert diagram is None
        provider.generate_flow_diagram.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "answer",
        [
            "I cannot draw this.",
            "flowchart TD\n    A[User] --> B[Done]",
        ],
    )
    async def test_unusable_answer(self, provider: MagicMock, answer: str) -> None:
        """Test answers without a usable flowchart are dropped."""
        provider.generate_flow_diagram = AsyncMock(return_value=answer)

        diagram = await FlowDiagramGenerator(provider).generate(
            [changed("src/orders.py")], PRPlan(overview="Add orders")
        )

        assert diagram is None

    @pytest.mark.asyncio
    async def test_provider_failure(self, provider: MagicMock) -> None:
        """Test provider errors are swallowed so the review can continue."""
        provider.generate_flow_diagram = AsyncMock(side_effect=LLMError("rate limited"))

        diagram = await FlowDiagramGenerator(provider).generate(
            [changed("src/orders.py")], PRPlan(overview="Add orders")
        )

        assert diagram is None
