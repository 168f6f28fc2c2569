"""Unit tests for modular Pydantic Settings v2."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from model_gateway.core.settings import (
    AISettings,
    LoggingSettings,
    get_ai_settings,
    get_logging_settings,
)
from model_gateway.infra.ai.availability import RetryPolicy


@pytest.mark.unit
class TestAISettings:
    """Test suite for AISettings."""

    def test_ai_settings_defaults(self):
        """Test AISettings default values."""
        settings = AISettings()

        assert settings.retry_max_attempts == 3
        assert settings.retry_base_delay == 0.5
        assert settings.retry_jitter is True
        assert settings.failover_enabled is False
        assert settings.online_cooldown_seconds is None
        assert settings.openai_api_key is None
        assert settings.openai_base_url == "https://api.openai.com/v1"
        assert settings.catalog_path is None

    def test_ai_settings_frozen(self):
        """Test that AISettings instances are frozen (immutable)."""
        settings = AISettings()

        with pytest.raises(ValidationError):
            settings.failover_enabled = True

    def test_ai_settings_from_env(self, monkeypatch):
        """Test environment variables with the AI_ prefix."""
        monkeypatch.setenv("AI_RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("AI_FAILOVER_ENABLED", "true")
        monkeypatch.setenv("AI_OPENAI_API_KEY", "sk-from-env")

        settings = AISettings()

        assert settings.retry_max_attempts == 5
        assert settings.failover_enabled is True
        assert settings.openai_api_key.get_secret_value() == "sk-from-env"
        assert "sk-from-env" not in repr(settings)

    def test_init_overrides_env(self, monkeypatch):
        monkeypatch.setenv("AI_RETRY_MAX_ATTEMPTS", "5")

        assert AISettings(retry_max_attempts=2).retry_max_attempts == 2

    def test_yaml_config_dir(self, monkeypatch, tmp_path):
        """Test conf.d YAML files are merged alphabetically over ai.yaml."""
        (tmp_path / "ai.yaml").write_text("retry_max_attempts: 4\nfailover_enabled: true\n")
        (tmp_path / "ai.d").mkdir()
        (tmp_path / "ai.d" / "10-retry.yaml").write_text("retry_max_attempts: 6\n")
        monkeypatch.setenv("AI_CONFIG_DIR", str(tmp_path))

        settings = AISettings()

        assert settings.retry_max_attempts == 6
        assert settings.failover_enabled is True

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"retry_max_attempts": 0},
            {"retry_base_delay": -1.0},
            {"request_timeout": 0},
            {"online_cooldown_seconds": -5},
        ],
    )
    def test_ai_settings_validation(self, kwargs):
        """Test out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            AISettings(**kwargs)

    def test_base_url_trailing_slash_stripped(self):
        settings = AISettings(openai_base_url="http://localhost:8080/v1/")

        assert settings.openai_base_url == "http://localhost:8080/v1"

    def test_to_retry_policy(self):
        """Test conversion into the availability controller's retry policy."""
        settings = AISettings(retry_max_attempts=4, retry_base_delay=1.5, retry_max_delay=10.0, retry_jitter=False)

        policy = settings.to_retry_policy()

        assert isinstance(policy, RetryPolicy)
        assert policy.max_attempts == 4
        assert policy.base_delay == 1.5
        assert policy.max_delay == 10.0
        assert policy.jitter is False


@pytest.mark.unit
class TestLoggingSettings:
    """Test suite for LoggingSettings."""

    def test_logging_settings_defaults(self):
        """Test LoggingSettings default values."""
        settings = LoggingSettings()

        assert settings.level == "INFO"
        assert settings.json_logs is True
        assert settings.file_path is None
        assert settings.console_enabled is True

    def test_json_alias(self, monkeypatch):
        """Test LOG_JSON maps onto json_logs."""
        monkeypatch.setenv("LOG_JSON", "false")

        assert LoggingSettings().json_logs is False
        assert LoggingSettings(json_logs=True).json_logs is True

    def test_invalid_level(self):
        with pytest.raises(ValidationError):
            LoggingSettings(level="VERBOSE")

    def test_to_logging_kwargs(self, tmp_path):
        """Test conversion into configure_logging keyword arguments."""
        settings = LoggingSettings(level="DEBUG", file_path=tmp_path / "gateway.jsonl")

        kwargs = settings.to_logging_kwargs()

        assert kwargs["log_level"] == "DEBUG"
        assert kwargs["console_level"] == "DEBUG"
        assert kwargs["file_path"] == str(tmp_path / "gateway.jsonl")
        assert kwargs["service_name"] == "model-gateway"


@pytest.mark.unit
class TestSettingsLoaders:
    """Test suite for the cached settings loaders."""

    def test_loaders_are_cached(self):
        assert get_ai_settings() is get_ai_settings()
        assert get_logging_settings() is get_logging_settings()

    def test_cache_clear_reloads(self, monkeypatch):
        """Test cache_clear picks up environment changes."""
        assert get_ai_settings().retry_max_attempts == 3

        monkeypatch.setenv("AI_RETRY_MAX_ATTEMPTS", "7")
        get_ai_settings.cache_clear()

        assert get_ai_settings().retry_max_attempts == 7
