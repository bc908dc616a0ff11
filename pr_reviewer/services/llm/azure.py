from typing import Any

import openai
import structlog

from pr_reviewer.core.config import DEFAULT_MODELS
from pr_reviewer.core.exceptions import LLMProviderUnavailableError
from pr_reviewer.services.llm.openai import JSON_MODE_MODELS, OpenAIProvider

logger = structlog.get_logger()

AZURE_JSON_MODE_MODELS = JSON_MODE_MODELS + (
    "gpt-35-turbo",
    "grok-3",
    "deepseek-r1",
    "codex-mini",
)


class AzureOpenAIProvider(OpenAIProvider):
    """
    Azure OpenAI provider.

    ``model`` is the deployment name. Deployments can carry any name, so
    ``real_model`` (when given) names the underlying model and is used to
    decide JSON mode and reasoning-model parameters.
    """

    json_mode_models = AZURE_JSON_MODE_MODELS

    def __init__(
        self,
        api_key: str | None,
        endpoint: str | None,
        api_version: str,
        model: str | None = None,
        real_model: str | None = None,
        deterministic_mode: bool = True,
    ) -> None:
        super().__init__(api_key, model or DEFAULT_MODELS["azure"], deterministic_mode)
        self._endpoint = endpoint
        self._api_version = api_version
        self._real_model = real_model

    @property
    def name(self) -> str:
        return "azure"

    @property
    def capability_model(self) -> str:
        return self._real_model or self._model

    def is_available(self) -> bool:
        return bool(self._api_key) and bool(self._endpoint)

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.is_available():
                raise LLMProviderUnavailableError("Azure OpenAI API key or endpoint not configured")
            logger.info(
                "Initializing Azure OpenAI client",
                endpoint=self._endpoint,
                deployment=self._model,
                api_version=self._api_version,
            )
            self._client = openai.AsyncAzureOpenAI(
                api_key=self._api_key,
                azure_endpoint=self._endpoint,
                api_version=self._api_version,
            )
        return self._client
