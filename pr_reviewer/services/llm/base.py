from abc import ABC, abstractmethod

import structlog

from pr_reviewer.core.exceptions import LLMError
from pr_reviewer.prompts.review import (
    FLOW_DIAGRAM_SYSTEM_PROMPT,
    PR_PLAN_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    build_architectural_review_prompt,
    build_batch_review_prompt,
    build_code_review_system_prompt,
    build_flow_diagram_prompt,
    build_pr_plan_prompt,
    build_summary_prompt,
    build_user_prompt,
)
from pr_reviewer.services.github.models import FileChange
from pr_reviewer.services.llm.models import (
    ArchitecturalReviewResult,
    CodeIssue,
    PRPlan,
    ReviewContext,
)
from pr_reviewer.services.llm.parsing import (
    assign_files_to_issues,
    parse_ai_response,
    parse_architectural_response,
    parse_pr_plan_response,
)
from pr_reviewer.services.rules.parser import CursorRule

logger = structlog.get_logger()


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Subclasses only implement the transport (``_complete``); every review
    operation is built from the shared prompts and parsers here.
    """

    def __init__(self, deterministic_mode: bool = True) -> None:
        self.deterministic_mode = deterministic_mode

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        pass

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and available."""
        pass

    @abstractmethod
    async def _complete(
        self,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        """
        Send one prompt and return the text of the reply.

        Raises:
            LLMError: On any vendor failure.
        """
        pass

    @property
    def supports_json_mode(self) -> bool:
        return False

    @property
    def temperature(self) -> float:
        return 0.0 if self.deterministic_mode else 0.1

    async def _complete_required(
        self,
        operation: str,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        logger.debug(
            "Sending request to LLM",
            provider=self.name,
            model=self.model,
            operation=operation,
            prompt_chars=len(user_prompt),
        )
        text = await self._complete(system_prompt, user_prompt, max_tokens, json_mode)
        if not text:
            raise LLMError(f"No response from {self.name} for {operation}")
        return text

    async def review_code(
        self,
        context: str,
        code: str,
        rules: list[CursorRule],
        guidelines: list[str] | None = None,
    ) -> list[CodeIssue]:
        """Review a single file given its review context and full content."""
        system_prompt = build_code_review_system_prompt(
            rules, self.supports_json_mode, guidelines
        )
        text = await self._complete_required(
            "review",
            system_prompt,
            build_user_prompt(context, code),
            max_tokens=8000,
            json_mode=self.supports_json_mode,
        )
        return parse_ai_response(text, self.deterministic_mode)

    async def review_batch(
        self,
        files: list[FileChange],
        rules: list[CursorRule],
        plan: PRPlan,
        guidelines: list[str] | None = None,
    ) -> list[CodeIssue]:
        system_prompt = build_code_review_system_prompt(
            rules, self.supports_json_mode, guidelines
        )
        text = await self._complete_required(
            "batch review",
            system_prompt,
            build_batch_review_prompt(files, rules, plan),
            max_tokens=12000,
            json_mode=self.supports_json_mode,
        )
        issues = parse_ai_response(text, self.deterministic_mode)
        return assign_files_to_issues(issues, files)

    async def review_architecture(
        self, files: list[FileChange], rules: list[CursorRule]
    ) -> ArchitecturalReviewResult:
        text = await self._complete_required(
            "architectural review",
            None,
            build_architectural_review_prompt(files, rules, self.supports_json_mode),
            max_tokens=8000,
            json_mode=self.supports_json_mode,
        )
        return parse_architectural_response(text)

    async def generate_pr_plan(self, files: list[FileChange], rules: list[CursorRule]) -> PRPlan:
        text = await self._complete_required(
            "PR plan",
            PR_PLAN_SYSTEM_PROMPT,
            build_pr_plan_prompt(files, rules),
            max_tokens=4000,
            json_mode=self.supports_json_mode,
        )
        return parse_pr_plan_response(text)

    async def generate_summary(self, issues: list[CodeIssue], context: ReviewContext) -> str:
        """Return the model's summary text; empty when the model said nothing."""
        text = await self._complete(
            SUMMARY_SYSTEM_PROMPT,
            build_summary_prompt(issues, context),
            max_tokens=3000,
        )
        return text.strip()

    async def generate_flow_diagram(
        self, files: list[FileChange], plan: PRPlan, pr_type: str
    ) -> str:
        """Return the model's raw Mermaid answer; extraction and checks are the caller's."""
        return await self._complete_required(
            "flow diagram",
            FLOW_DIAGRAM_SYSTEM_PROMPT,
            build_flow_diagram_prompt(files, plan, pr_type),
            max_tokens=2000,
        )
