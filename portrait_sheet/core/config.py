"""
Application configuration.

Settings are read from the process environment and from a `.env` file at the
project root. Variables already set in the environment win over the file, so
a local setup only needs `OPENAI_API_KEY=...` in `.env`.
"""

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from portrait_sheet.errors import ConfigurationError

ENV_PATH = Path(__file__).resolve().parent.parent.parent / ".env"

DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def mask_secret(value: str, visible: int = 7) -> str:
    """Mask a credential for log output."""
    if len(value) <= visible:
        return "*" * len(value)
    return f"{value[:visible]}..."


class Settings(BaseSettings):
    """Process-wide settings, resolved once at startup."""

    model_config = SettingsConfigDict(
        env_file=ENV_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Image provider
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_image_model: str = "gpt-image-1.5"
    # None means the provider call may wait indefinitely.
    provider_timeout_seconds: Optional[float] = None
    provider_max_requests_per_minute: int = 30
    provider_burst_capacity: int = 7
    provider_min_interval_seconds: float = 0.0
    provider_acquire_timeout_seconds: Optional[float] = 600.0
    provider_max_workers: int = 8

    # HTTP surface
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    shutdown_drain_seconds: float = 30.0
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 5177

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def strip_api_key(cls, v):
        """Strip whitespace and newlines from keys pasted into `.env` or secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("openai_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("provider_timeout_seconds", "provider_acquire_timeout_seconds", mode="before")
    @classmethod
    def blank_means_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()

    def require_api_key(self) -> str:
        """
        Return the provider credential or fail startup.

        A missing key is a fatal startup condition, never a per-job error.
        """
        if not self.openai_api_key:
            raise ConfigurationError(
                "Missing OPENAI_API_KEY in environment or .env; "
                "the image provider cannot be reached without it."
            )
        return self.openai_api_key
