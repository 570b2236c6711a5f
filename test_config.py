"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from portrait_sheet.core.config import Settings, mask_secret
from portrait_sheet.errors import ConfigurationError

SETTING_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_IMAGE_MODEL",
    "PROVIDER_TIMEOUT_SECONDS",
    "PROVIDER_MAX_REQUESTS_PER_MINUTE",
    "PROVIDER_BURST_CAPACITY",
    "PROVIDER_MIN_INTERVAL_SECONDS",
    "PROVIDER_ACQUIRE_TIMEOUT_SECONDS",
    "PROVIDER_MAX_WORKERS",
    "MAX_UPLOAD_BYTES",
    "SHUTDOWN_DRAIN_SECONDS",
    "LOG_LEVEL",
    "HOST",
    "PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in SETTING_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_without_environment(clean_env):
    settings = Settings(_env_file=None)

    assert settings.openai_api_key == ""
    assert settings.openai_image_model == "gpt-image-1.5"
    assert settings.openai_base_url == "https://api.openai.com/v1"
    assert settings.provider_timeout_seconds is None
    assert settings.provider_acquire_timeout_seconds == 600.0
    assert settings.provider_max_workers == 8
    assert settings.max_upload_bytes == 20 * 1024 * 1024
    assert settings.port == 5177
    assert settings.log_level == "INFO"


def test_values_are_parsed_from_environment(clean_env):
    values = {
        "OPENAI_API_KEY": "  sk-abc \n",
        "OPENAI_BASE_URL": "https://proxy.example/v1/",
        "PROVIDER_TIMEOUT_SECONDS": "90",
        "PROVIDER_MAX_REQUESTS_PER_MINUTE": "6",
        "PROVIDER_BURST_CAPACITY": "2",
        "PROVIDER_MIN_INTERVAL_SECONDS": "1.5",
        "PROVIDER_ACQUIRE_TIMEOUT_SECONDS": "",
        "PROVIDER_MAX_WORKERS": "3",
        "MAX_UPLOAD_BYTES": "1000",
        "LOG_LEVEL": "debug",
        "PORT": "8080",
    }
    for name, value in values.items():
        clean_env.setenv(name, value)

    settings = Settings(_env_file=None)

    assert settings.openai_api_key == "sk-abc"
    assert settings.openai_base_url == "https://proxy.example/v1"
    assert settings.provider_timeout_seconds == 90.0
    assert settings.provider_max_requests_per_minute == 6
    assert settings.provider_burst_capacity == 2
    assert settings.provider_min_interval_seconds == 1.5
    assert settings.provider_acquire_timeout_seconds is None
    assert settings.provider_max_workers == 3
    assert settings.max_upload_bytes == 1000
    assert settings.log_level == "DEBUG"
    assert settings.port == 8080


def test_invalid_value_names_the_field(clean_env):
    clean_env.setenv("PORT", "abc")

    with pytest.raises(ValidationError, match="port"):
        Settings(_env_file=None)


def test_settings_are_frozen(clean_env):
    settings = Settings(_env_file=None)

    with pytest.raises(ValidationError):
        settings.port = 1


def test_missing_key_is_a_configuration_error(clean_env):
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        Settings(_env_file=None).require_api_key()


def test_require_api_key_returns_key():
    assert Settings(_env_file=None, openai_api_key="sk-abc").require_api_key() == "sk-abc"


def test_dotenv_file_is_read_without_overriding_environment(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("OPENAI_API_KEY=sk-from-file\nPORT=9000\n")
    clean_env.setenv("PORT", "7000")

    settings = Settings(_env_file=env_file)

    assert settings.openai_api_key == "sk-from-file"
    assert settings.port == 7000


def test_missing_dotenv_file_is_ignored(clean_env, tmp_path):
    settings = Settings(_env_file=tmp_path / "missing.env")

    assert settings.openai_api_key == ""


def test_mask_secret():
    assert mask_secret("sk-proj-abcdefgh") == "sk-proj..."
    assert mask_secret("short") == "*****"
