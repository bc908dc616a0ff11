from typing import Any

import openai
import structlog

from pr_reviewer.core.config import DEFAULT_MODELS
from pr_reviewer.core.exceptions import LLMError, LLMProviderUnavailableError, LLMRateLimitError
from pr_reviewer.services.llm.base import LLMProvider

logger = structlog.get_logger()

# Models accepting response_format={"type": "json_object"}, matched by prefix
JSON_MODE_MODELS = (
    "gpt-5",
    "o1",
    "o3",
    "o4",
    "gpt-4.1",
    "gpt-4-turbo",
    "gpt-4o",
    "gpt-3.5-turbo",
)

REASONING_MODEL_PREFIXES = ("o1", "o3", "o4")


def is_reasoning_model(model: str) -> bool:
    return model.startswith(REASONING_MODEL_PREFIXES)


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider."""

    json_mode_models: tuple[str, ...] = JSON_MODE_MODELS

    def __init__(
        self,
        api_key: str | None,
        model: str | None = None,
        deterministic_mode: bool = True,
    ) -> None:
        super().__init__(deterministic_mode)
        self._api_key = api_key
        self._model = model or DEFAULT_MODELS["openai"]
        self._client: Any = None

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    @property
    def capability_model(self) -> str:
        """The model name used for feature checks."""
        return self._model

    @property
    def supports_json_mode(self) -> bool:
        return self.capability_model.startswith(self.json_mode_models)

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> Any:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            if not self.is_available():
                raise LLMProviderUnavailableError("OpenAI API key not configured")
            self._client = openai.AsyncOpenAI(api_key=self._api_key)
        return self._client

    def _build_request(
        self,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool,
    ) -> dict[str, Any]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        request: dict[str, Any] = {"model": self._model, "messages": messages}
        if is_reasoning_model(self.capability_model):
            request["max_completion_tokens"] = max_tokens
        else:
            request["max_tokens"] = max_tokens
            request["temperature"] = self.temperature
        if json_mode and self.supports_json_mode:
            request["response_format"] = {"type": "json_object"}
        return request

    async def _complete(
        self,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        client = self._get_client()
        request = self._build_request(system_prompt, user_prompt, max_tokens, json_mode)

        try:
            response = await client.chat.completions.create(**request)
        except openai.RateLimitError as e:
            logger.error("OpenAI rate limit exceeded", provider=self.name, error=str(e))
            raise LLMRateLimitError(f"{self.name} rate limit exceeded: {e}") from e
        except openai.OpenAIError as e:
            logger.error("OpenAI API error", provider=self.name, error=str(e))
            raise LLMError(f"{self.name} API error: {e}") from e

        if not response.choices:
            return ""
        content: str | None = response.choices[0].message.content
        return content or ""
