import pytest

from pr_reviewer.core.config import (
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_INCLUDE_PATTERNS,
    Settings,
    get_recommended_model,
    severity_level,
    validate_settings,
)
from pr_reviewer.core.exceptions import ConfigurationError


class TestSettings:
    """Tests for reading action inputs."""

    def test_reads_input_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that INPUT_* variables populate settings."""
        monkeypatch.setenv("INPUT_GH_TOKEN", "env-token")
        monkeypatch.setenv("INPUT_REVIEW_LEVEL", "thorough")
        monkeypatch.setenv("INPUT_MAX_FILES", "10")
        monkeypatch.setenv("INPUT_ENABLE_AUTO_FIX", "true")

        settings = Settings()

        assert settings.gh_token.get_secret_value() == "env-token"
        assert settings.review_level == "thorough"
        assert settings.max_files == 10
        assert settings.enable_auto_fix is True

    def test_comma_separated_patterns(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that pattern inputs are split on commas."""
        monkeypatch.setenv("INPUT_INCLUDE_PATTERNS", "**/*.py, **/*.go ,")

        settings = Settings()

        assert settings.include_patterns == ["**/*.py", "**/*.go"]

    def test_empty_inputs_use_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that empty strings from the runner fall back to defaults."""
        monkeypatch.setenv("INPUT_INCLUDE_PATTERNS", "")
        monkeypatch.setenv("INPUT_COMMENT_STYLE", "")

        settings = Settings()

        assert settings.include_patterns == DEFAULT_INCLUDE_PATTERNS
        assert settings.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
        assert settings.comment_style == "both"

    def test_comment_style_flags(self) -> None:
        """Test inline and summary flags for each comment style."""
        inline = Settings(gh_token="t", comment_style="inline")
        summary = Settings(gh_token="t", comment_style="summary")

        assert inline.should_post_inline and not inline.should_post_summary
        assert summary.should_post_summary and not summary.should_post_inline

    def test_azure_credentials_need_endpoint(self) -> None:
        """Test that an Azure key alone is not enough."""
        settings = Settings(gh_token="t", azure_openai_api_key="key")
        assert not settings.has_azure_credentials

        settings = Settings(
            gh_token="t",
            azure_openai_api_key="key",
            azure_openai_endpoint="https://example.openai.azure.com",
        )
        assert settings.has_azure_credentials


class TestValidateSettings:
    """Tests for cross-field validation."""

    def test_valid_settings(self, settings: Settings) -> None:
        """Test that the default test settings validate."""
        validate_settings(settings)

    def test_openai_requires_key(self) -> None:
        """Test that the openai provider needs its key."""
        settings = Settings(gh_token="t", ai_provider="openai", openai_api_key=None)

        with pytest.raises(ConfigurationError, match="OpenAI API key is required"):
            validate_settings(settings)

    def test_anthropic_requires_key(self) -> None:
        """Test that the anthropic provider needs its key."""
        settings = Settings(gh_token="t", ai_provider="anthropic", anthropic_api_key=None)

        with pytest.raises(ConfigurationError, match="Anthropic API key is required"):
            validate_settings(settings)

    def test_azure_requires_endpoint(self) -> None:
        """Test that the azure provider needs key and endpoint."""
        settings = Settings(gh_token="t", ai_provider="azure", azure_openai_api_key="key")

        with pytest.raises(ConfigurationError, match="Azure OpenAI API key and endpoint"):
            validate_settings(settings)

    def test_auto_requires_some_credential(self) -> None:
        """Test that auto detection fails without any credential."""
        settings = Settings(gh_token="t", ai_provider="auto", openai_api_key=None)

        with pytest.raises(ConfigurationError, match="At least one AI provider credential"):
            validate_settings(settings)

    def test_unsupported_model_for_provider(self) -> None:
        """Test that unknown models are rejected for fixed-list providers."""
        settings = Settings(
            gh_token="t", ai_provider="openai", openai_api_key="k", model="not-a-model"
        )

        with pytest.raises(ConfigurationError, match="is not supported by provider"):
            validate_settings(settings)

    def test_azure_accepts_any_deployment_name(self) -> None:
        """Test that Azure deployment names are free-form."""
        settings = Settings(
            gh_token="t",
            ai_provider="azure",
            azure_openai_api_key="key",
            azure_openai_endpoint="https://example.openai.azure.com",
            model="my-deployment",
        )

        validate_settings(settings)

    def test_auto_model_needs_matching_key(self) -> None:
        """Test that a known model checks its provider's key under auto."""
        settings = Settings(
            gh_token="t",
            ai_provider="auto",
            openai_api_key="k",
            anthropic_api_key=None,
            model="claude-3-haiku-20240307",
        )

        with pytest.raises(ConfigurationError, match="requires Anthropic API key"):
            validate_settings(settings)

    @pytest.mark.parametrize(
        ("field", "value", "message"),
        [
            ("max_files", 0, "max_files must be between 1 and 200"),
            ("max_files", 201, "max_files must be between 1 and 200"),
            ("request_delay", -1, "request_delay must be between"),
            ("batch_size", 0, "batch_size must be at least 1"),
            ("flow_diagram_max_files", 0, "flow_diagram_max_files must be between 1 and 50"),
            ("flow_diagram_max_files", 51, "flow_diagram_max_files must be between 1 and 50"),
        ],
    )
    def test_numeric_ranges(self, field: str, value: int, message: str) -> None:
        """Test range checks on numeric inputs."""
        settings = Settings(gh_token="t", ai_provider="openai", openai_api_key="k")
        settings = settings.model_copy(update={field: value})

        with pytest.raises(ConfigurationError, match=message):
            validate_settings(settings)


class TestModelHelpers:
    """Tests for model and severity helpers."""

    def test_recommended_model_by_level(self) -> None:
        """Test recommendations per review level."""
        assert get_recommended_model("openai", "light") == "gpt-4o-mini"
        assert get_recommended_model("anthropic", "thorough") == "claude-3-5-sonnet-20241022"

    def test_recommended_model_falls_back_to_default(self) -> None:
        """Test providers without recommendations use their default model."""
        assert get_recommended_model("bedrock", "standard").startswith("anthropic.claude")

    def test_severity_order(self) -> None:
        """Test that severities rank error above warning above info."""
        assert severity_level("error") > severity_level("warning") > severity_level("info")
        assert severity_level("suggestion") == severity_level("all")
