from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from pr_reviewer.core.exceptions import ConfigurationError

ProviderName = Literal["openai", "anthropic", "azure", "bedrock"]
ReviewLevel = Literal["light", "standard", "thorough"]
SeverityFilter = Literal["error", "warning", "info", "all"]

DEFAULT_INCLUDE_PATTERNS = [
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
    "**/*.py",
    "**/*.go",
    "**/*.rs",
    "**/*.java",
    "**/*.cs",
]

DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules/**",
    "dist/**",
    "build/**",
    "coverage/**",
    "*.min.js",
    "*.bundle.js",
]


class Settings(BaseSettings):  # type: ignore[misc]
    """Action inputs, read from the INPUT_* variables the runner exports."""

    model_config = SettingsConfigDict(
        env_prefix="INPUT_",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    # GitHub
    gh_token: SecretStr = Field(default=...)
    github_api_url: str = "https://api.github.com"
    pr_number: int | None = None
    github_rate_limit: int = 1000  # ms between GitHub API calls

    # Provider credentials
    openai_api_key: SecretStr | None = None
    anthropic_api_key: SecretStr | None = None
    azure_openai_api_key: SecretStr | None = None
    azure_openai_endpoint: str | None = None
    azure_openai_api_version: str = "2024-10-21"
    azure_openai_real_model: str | None = None
    bedrock_region: str = "us-east-1"
    bedrock_access_key_id: SecretStr | None = None
    bedrock_secret_access_key: SecretStr | None = None
    bedrock_anthropic_version: str = "bedrock-2023-05-31"

    # Model selection
    ai_provider: Literal["openai", "anthropic", "azure", "bedrock", "auto"] = "auto"
    model: str = "auto"
    review_level: ReviewLevel = "standard"
    deterministic_mode: bool = True

    # Review scope
    rules_path: str | None = None
    include_patterns: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS)
    )
    exclude_patterns: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS)
    )
    max_files: int = 50
    skip_if_no_rules: bool = False
    enable_architectural_review: bool = False

    # Comment output
    comment_style: Literal["inline", "summary", "both"] = "both"
    inline_severity: SeverityFilter = "warning"
    summary_format: Literal["brief", "detailed", "minimal"] = "detailed"
    log_level: SeverityFilter = "all"
    enable_suggestions: bool = True
    update_existing_comments: bool = True
    delete_orphaned_comments: bool = False
    enable_flow_diagram: bool = True
    flow_diagram_max_files: int = 10

    # Auto-fix
    enable_auto_fix: bool = False
    auto_fix_severity: SeverityFilter = "error"

    # Throttling
    request_delay: int = 2000  # ms between AI batches
    batch_size: int = 1

    @field_validator("include_patterns", "exclude_patterns", mode="before")
    @classmethod
    def _split_patterns(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [p.strip() for p in value.split(",") if p.strip()]
        return value

    @field_validator("include_patterns", mode="after")
    @classmethod
    def _default_include(cls, value: list[str]) -> list[str]:
        return value or list(DEFAULT_INCLUDE_PATTERNS)

    @field_validator("exclude_patterns", mode="after")
    @classmethod
    def _default_exclude(cls, value: list[str]) -> list[str]:
        return value or list(DEFAULT_EXCLUDE_PATTERNS)

    @property
    def has_azure_credentials(self) -> bool:
        return self.azure_openai_api_key is not None and bool(self.azure_openai_endpoint)

    @property
    def has_bedrock_credentials(self) -> bool:
        return self.bedrock_access_key_id is not None

    @property
    def should_post_inline(self) -> bool:
        return self.comment_style in ("inline", "both")

    @property
    def should_post_summary(self) -> bool:
        return self.comment_style in ("summary", "both")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# =============================================================================
# Models
# =============================================================================

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-sonnet-20240229",
    "azure": "gpt-4o",
    "bedrock": "anthropic.claude-3-5-sonnet-20241022-v2:0",
}

SUPPORTED_MODELS: dict[str, list[str]] = {
    "openai": [
        "gpt-4",
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4-turbo-preview",
        "gpt-3.5-turbo",
        "gpt-3.5-turbo-16k",
    ],
    "anthropic": [
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
        "claude-3-5-sonnet-20241022",
    ],
}

MODEL_CAPABILITIES: dict[str, dict[str, Any]] = {
    "gpt-4o": {
        "provider": "openai",
        "tier": "premium",
        "description": "Latest GPT-4 with improved reasoning and speed",
        "best_for": ["complex-code-analysis", "detailed-reviews"],
    },
    "gpt-4": {
        "provider": "openai",
        "tier": "premium",
        "description": "Original GPT-4 with excellent reasoning",
        "best_for": ["complex-code-analysis", "detailed-reviews"],
    },
    "gpt-4o-mini": {
        "provider": "openai",
        "tier": "standard",
        "description": "Fast and cost-effective GPT-4 variant",
        "best_for": ["quick-reviews", "large-prs"],
    },
    "gpt-4-turbo": {
        "provider": "openai",
        "tier": "premium",
        "description": "Enhanced GPT-4 with larger context window",
        "best_for": ["complex-code-analysis", "detailed-reviews", "large-files"],
    },
    "gpt-3.5-turbo": {
        "provider": "openai",
        "tier": "standard",
        "description": "Fast and reliable for most code reviews",
        "best_for": ["quick-reviews", "standard-reviews"],
    },
    "claude-3-opus-20240229": {
        "provider": "anthropic",
        "tier": "premium",
        "description": "Most capable Claude 3 model for complex reasoning",
        "best_for": ["complex-code-analysis", "detailed-reviews"],
    },
    "claude-3-sonnet-20240229": {
        "provider": "anthropic",
        "tier": "premium",
        "description": "Balanced Claude model for comprehensive reviews",
        "best_for": ["detailed-reviews", "balanced-cost-quality"],
    },
    "claude-3-5-sonnet-20241022": {
        "provider": "anthropic",
        "tier": "premium",
        "description": "Claude with enhanced code understanding",
        "best_for": ["complex-code-analysis", "detailed-reviews"],
    },
    "claude-3-haiku-20240307": {
        "provider": "anthropic",
        "tier": "standard",
        "description": "Fast and cost-effective Claude model",
        "best_for": ["quick-reviews", "large-prs"],
    },
}

RECOMMENDED_MODELS: dict[str, dict[str, str]] = {
    "light": {
        "openai": "gpt-4o-mini",
        "anthropic": "claude-3-haiku-20240307",
    },
    "standard": {
        "openai": "gpt-4",
        "anthropic": "claude-3-sonnet-20240229",
    },
    "thorough": {
        "openai": "gpt-4o",
        "anthropic": "claude-3-5-sonnet-20241022",
    },
}

SEVERITY_LEVELS: dict[str, int] = {
    "error": 4,
    "warning": 3,
    "info": 2,
    "all": 1,
}

COMMENT_MARKERS = {
    "BOT_IDENTIFIER": "<!-- cursor-ai-pr-reviewer -->",
    "SUMMARY_MARKER": "<!-- cursor-ai-summary -->",
    "INLINE_MARKER": "<!-- cursor-ai-inline -->",
    "ARCHITECTURAL_MARKER": "<!-- cursor-ai-architectural -->",
}


def severity_level(value: str) -> int:
    """Rank an issue type or severity filter; unknown values rank lowest."""
    return SEVERITY_LEVELS.get(value, 1)


def get_recommended_model(provider: str, review_level: str) -> str:
    recommended = RECOMMENDED_MODELS.get(review_level, {}).get(provider)
    return recommended or DEFAULT_MODELS.get(provider, "")


def get_model_info(model: str) -> dict[str, Any] | None:
    return MODEL_CAPABILITIES.get(model)


# =============================================================================
# Validation
# =============================================================================


def validate_settings(settings: Settings) -> None:
    """
    Check cross-field constraints that field types alone cannot express.

    Raises:
        ConfigurationError: On the first violated constraint.
    """
    provider = settings.ai_provider

    if provider == "openai" and settings.openai_api_key is None:
        raise ConfigurationError('OpenAI API key is required when ai_provider is set to "openai"')

    if provider == "anthropic" and settings.anthropic_api_key is None:
        raise ConfigurationError(
            'Anthropic API key is required when ai_provider is set to "anthropic"'
        )

    if provider == "azure" and not settings.has_azure_credentials:
        raise ConfigurationError(
            'Azure OpenAI API key and endpoint are required when ai_provider is set to "azure"'
        )

    if provider == "auto" and not (
        settings.openai_api_key is not None
        or settings.anthropic_api_key is not None
        or settings.has_azure_credentials
        or settings.has_bedrock_credentials
    ):
        raise ConfigurationError(
            "At least one AI provider credential is required "
            "(openai_api_key, anthropic_api_key, azure_openai_api_key or bedrock_access_key_id)"
        )

    if settings.model and settings.model != "auto":
        validate_model_choice(settings.model, provider, settings)

    if settings.max_files < 1 or settings.max_files > 200:
        raise ConfigurationError("max_files must be between 1 and 200")

    if settings.request_delay < 0 or settings.request_delay > 60000:
        raise ConfigurationError("request_delay must be between 0 and 60000 milliseconds")

    if settings.batch_size < 1:
        raise ConfigurationError("batch_size must be at least 1")

    if settings.flow_diagram_max_files < 1 or settings.flow_diagram_max_files > 50:
        raise ConfigurationError("flow_diagram_max_files must be between 1 and 50")

    if not settings.include_patterns:
        raise ConfigurationError("include_patterns cannot be empty")


def validate_model_choice(model: str, provider: str, settings: Settings) -> None:
    """Validate a model against the provider that will serve it."""
    if provider == "auto":
        info = get_model_info(model)
        if info is None:
            return
        if info["provider"] == "openai" and settings.openai_api_key is None:
            raise ConfigurationError(f'Model "{model}" requires OpenAI API key, but none provided')
        if info["provider"] == "anthropic" and settings.anthropic_api_key is None:
            raise ConfigurationError(
                f'Model "{model}" requires Anthropic API key, but none provided'
            )
        return

    # Azure deployments and Bedrock model ids are free-form
    supported = SUPPORTED_MODELS.get(provider)
    if supported is None:
        return

    if model not in supported:
        suggestions = ", ".join(supported[:3])
        raise ConfigurationError(
            f'Model "{model}" is not supported by provider "{provider}". '
            f"Supported models: {suggestions}. See documentation for full list.",
            details={"model": model, "provider": provider},
        )
