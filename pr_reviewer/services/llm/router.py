import structlog
from pydantic import SecretStr

from pr_reviewer.core.config import DEFAULT_MODELS, Settings, get_recommended_model
from pr_reviewer.core.exceptions import LLMProviderUnavailableError
from pr_reviewer.services.llm.anthropic import AnthropicProvider
from pr_reviewer.services.llm.azure import AzureOpenAIProvider
from pr_reviewer.services.llm.base import LLMProvider
from pr_reviewer.services.llm.bedrock import BedrockProvider
from pr_reviewer.services.llm.openai import OpenAIProvider

logger = structlog.get_logger()

PROVIDER_ORDER = ("openai", "anthropic", "azure", "bedrock")


def _secret(value: SecretStr | None) -> str | None:
    return value.get_secret_value() if value is not None else None


def _configured(settings: Settings, name: str) -> bool:
    if name == "openai":
        return settings.openai_api_key is not None
    if name == "anthropic":
        return settings.anthropic_api_key is not None
    if name == "azure":
        return settings.has_azure_credentials
    if name == "bedrock":
        return settings.has_bedrock_credentials
    return False


def resolve_provider_and_model(settings: Settings) -> tuple[str, str]:
    """
    Work out which provider and model to use.

    Raises:
        LLMProviderUnavailableError: If ``ai_provider`` is ``auto`` and no
            credentials are configured.
    """
    provider: str = settings.ai_provider
    if provider == "auto":
        detected = next((name for name in PROVIDER_ORDER if _configured(settings, name)), None)
        if detected is None:
            raise LLMProviderUnavailableError("No AI provider API key available")
        provider = detected
        logger.info("Auto-detected AI provider", provider=provider)

    model = settings.model
    if model == "auto":
        model = get_recommended_model(provider, settings.review_level)
        logger.info("Auto-selected model", model=model, review_level=settings.review_level)
    elif not model:
        model = DEFAULT_MODELS[provider]

    return provider, model


class LLMRouter:
    """Creates and caches the provider selected by the action inputs."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._providers: dict[str, LLMProvider] = {}

    def _create_provider(self, name: str, model: str) -> LLMProvider:
        settings = self.settings
        deterministic = settings.deterministic_mode

        if name == "openai":
            return OpenAIProvider(_secret(settings.openai_api_key), model, deterministic)
        if name == "anthropic":
            return AnthropicProvider(_secret(settings.anthropic_api_key), model, deterministic)
        if name == "azure":
            return AzureOpenAIProvider(
                _secret(settings.azure_openai_api_key),
                settings.azure_openai_endpoint,
                settings.azure_openai_api_version,
                model=model,
                real_model=settings.azure_openai_real_model,
                deterministic_mode=deterministic,
            )
        if name == "bedrock":
            return BedrockProvider(
                region=settings.bedrock_region,
                model=model,
                deterministic_mode=deterministic,
                access_key_id=_secret(settings.bedrock_access_key_id),
                secret_access_key=_secret(settings.bedrock_secret_access_key),
                anthropic_version=settings.bedrock_anthropic_version,
            )
        raise LLMProviderUnavailableError(f"Unsupported AI provider: {name}")

    def get_provider(self) -> LLMProvider:
        """
        Get or create the configured provider.

        Raises:
            LLMProviderUnavailableError: If the provider has no credentials.
        """
        name, model = resolve_provider_and_model(self.settings)
        if name not in self._providers:
            provider = self._create_provider(name, model)
            if not provider.is_available():
                raise LLMProviderUnavailableError(f"{name} provider is not configured")
            logger.info(
                "Using LLM provider",
                provider=name,
                model=model,
                deterministic=self.settings.deterministic_mode,
            )
            self._providers[name] = provider
        return self._providers[name]

    def get_available_providers(self) -> list[str]:
        """Get list of configured providers, in auto-detect order."""
        return [name for name in PROVIDER_ORDER if _configured(self.settings, name)]

    @staticmethod
    def get_model_recommendations(review_level: str) -> dict[str, str]:
        return {name: get_recommended_model(name, review_level) for name in PROVIDER_ORDER}
