"""Tests for settings and client configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from termai.llm import ClientConfig, ConfigError
from termai.settings import Settings


@pytest.fixture
def clean_env(monkeypatch):
    """Remove any TERMAI-relevant variables from the environment."""
    for name in (
        "OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_ORG_ID", "MODEL", "TEMPERATURE",
        "MAX_TOKENS", "TOP_P", "N", "STOP", "REASONING_EFFORT", "CACHE_ENABLED",
        "CACHE_TTL_SECONDS", "CACHE_MAX_SIZE_MB", "CACHE_STRATEGY", "CACHE_DIR",
        "LOG_LEVEL", "LOG_FORMAT", "LOG_FILE", "REQUEST_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, clean_env):
        """Defaults apply when nothing is set."""
        settings = Settings(_env_file=None)

        assert settings.model == "gpt-4o-mini"
        assert settings.temperature == 0.7
        assert settings.max_tokens == 4096
        assert settings.cache_enabled is True
        assert settings.cache_ttl_seconds == 86400
        assert settings.cache_path is None
        assert settings.log_level == "WARNING"
        assert not settings.has_api_key

    def test_from_environment(self, clean_env):
        """Values are read from environment variables."""
        clean_env.setenv("OPENAI_API_KEY", "sk-env-key-0123456789")
        clean_env.setenv("MODEL", "gpt-4o")
        clean_env.setenv("TEMPERATURE", "0.2")
        clean_env.setenv("STOP", "END,STOP")
        clean_env.setenv("CACHE_DIR", "~/.termai")
        clean_env.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.has_api_key
        assert settings.model == "gpt-4o"
        assert settings.temperature == 0.2
        assert settings.stop_list == ["END", "STOP"]
        assert settings.cache_path == Path("~/.termai").expanduser()
        assert settings.log_level == "DEBUG"

    def test_env_file(self, clean_env, tmp_path):
        """Values are read from a .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("OPENAI_API_KEY=sk-file-key\nMAX_TOKENS=256\n")

        settings = Settings(_env_file=env_file)

        assert settings.openai_api_key == "sk-file-key"
        assert settings.max_tokens == 256

    @pytest.mark.parametrize("field, value", [
        ("temperature", 2.5),
        ("top_p", 1.5),
        ("max_tokens", 0),
        ("n", -1),
        ("reasoning_effort", "extreme"),
        ("cache_strategy", "random"),
        ("log_level", "CHATTY"),
        ("log_format", "xml"),
    ])
    def test_invalid_values(self, clean_env, field, value):
        """Out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_reasoning_model_adjustment(self, clean_env):
        """Reasoning models get temperature 1.0 and a default effort."""
        settings = Settings(_env_file=None, model="o3-mini", temperature=0.3)

        assert settings.temperature == 1.0
        assert settings.reasoning_effort == "low"

    def test_effort_dropped_for_plain_model(self, clean_env):
        """Ordinary models ignore reasoning_effort."""
        settings = Settings(_env_file=None, model="gpt-4o", reasoning_effort="high")
        assert settings.reasoning_effort == ""

    def test_default_temperature_one_normalized(self, clean_env):
        """A configured temperature of 1.0 becomes 0.7 for ordinary models."""
        settings = Settings(_env_file=None, model="gpt-4o", temperature=1.0)
        assert settings.temperature == 0.7

    def test_safe_dict_redacts_key(self, clean_env):
        """The API key is never shown in full."""
        key = "sk-proj-abcdefghijklmnopqrstuvwxyz"
        data = Settings(_env_file=None, openai_api_key=key).to_safe_dict()

        assert key not in str(data)
        assert data["openai_api_key"] == "sk-proj-...wxyz"


class TestClientConfig:
    """Tests for building ClientConfig from settings."""

    def test_from_settings(self, clean_env, tmp_path):
        """Settings map onto the client and cache config."""
        settings = Settings(
            _env_file=None,
            openai_api_key="sk-test",
            model="gpt-4o",
            stop="END",
            request_timeout=15,
            cache_max_size_mb=5,
            cache_dir=str(tmp_path),
        )
        config = ClientConfig.from_settings(settings)

        assert config.api_key == "sk-test"
        assert config.model == "gpt-4o"
        assert config.stop == ("END",)
        assert config.timeout.read_timeout == 15.0
        assert config.cache.max_size_bytes == 5 * 1024 * 1024
        assert config.cache.directory == tmp_path

    def test_validate_requires_key(self):
        """validate() rejects a config without an API key."""
        with pytest.raises(ConfigError):
            ClientConfig().validate()

    def test_validate_accepts_key(self):
        """A config with a key and defaults is valid."""
        ClientConfig(api_key="sk-test").validate()
