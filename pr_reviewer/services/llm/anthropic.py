from typing import Any

import anthropic
import structlog

from pr_reviewer.core.config import DEFAULT_MODELS
from pr_reviewer.core.exceptions import LLMError, LLMProviderUnavailableError, LLMRateLimitError
from pr_reviewer.services.llm.base import LLMProvider

logger = structlog.get_logger()


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider for code review."""

    def __init__(
        self,
        api_key: str | None,
        model: str | None = None,
        deterministic_mode: bool = True,
    ) -> None:
        super().__init__(deterministic_mode)
        self._api_key = api_key
        self._model = model or DEFAULT_MODELS["anthropic"]
        self._client: Any = None

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> Any:
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            if not self.is_available():
                raise LLMProviderUnavailableError("Anthropic API key not configured")
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def _complete(
        self,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        client = self._get_client()

        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            request["system"] = system_prompt

        try:
            message = await client.messages.create(**request)
        except anthropic.RateLimitError as e:
            logger.error("Anthropic rate limit exceeded", error=str(e))
            raise LLMRateLimitError(f"Anthropic rate limit exceeded: {e}") from e
        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e))
            raise LLMError(f"Anthropic API error: {e}") from e

        if not message.content:
            return ""
        block = message.content[0]
        block_type = getattr(block, "type", None)
        if block_type != "text":
            logger.warning("Unexpected Anthropic response block", block_type=block_type)
            return ""
        text: str = block.text
        return text
