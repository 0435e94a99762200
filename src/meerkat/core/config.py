"""Application configuration using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Public anon key of the hosted Meerkat auth project. Only used when the
# server's auth-config discovery endpoint cannot be reached.
DEFAULT_SUPABASE_URL = "https://bmitcoorzyppmhmcntae.supabase.co"
DEFAULT_SUPABASE_ANON_KEY = (
    "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
    "eyJpc3MiOiJzdXBhYmFzZSIsInJlZiI6ImJtaXRjb29yenlwcG1obWNudGFlIiwicm9sZSI6"
    "ImFub24iLCJpYXQiOjE3Njk5NTY2MzYsImV4cCI6MjA4NTUzMjYzNn0."
    "eE1amvJBkyOl9ubtpJfNiwgiw-_9i8--Rph2xVw8Au0"
)


def _default_config_dir() -> Path:
    return Path.home() / ".config" / "meerkat"


class Settings(BaseSettings):
    """CLI settings loaded from MEERKAT_* environment variables."""

    # Storage
    config_dir: Path = Field(
        default_factory=_default_config_dir,
        description="Directory holding config.json and credentials.json",
    )

    # Server
    default_server_url: str = Field(
        default="https://themeerkat.app",
        description="Server URL offered as the default at login",
    )
    http_timeout: float = Field(
        default=30.0,
        description="Timeout for outbound HTTP calls in seconds",
    )

    # Auth
    token_refresh_buffer: int = Field(
        default=300,
        description="Seconds before token expiry to trigger refresh (5 min default)",
    )
    fallback_supabase_url: str = Field(
        default=DEFAULT_SUPABASE_URL,
        description="Auth provider URL used when discovery fails (empty disables)",
    )
    fallback_supabase_anon_key: str = Field(
        default=DEFAULT_SUPABASE_ANON_KEY,
        description="Auth provider public key used when discovery fails",
    )

    # Uploads
    upload_poll_interval: float = Field(
        default=2.0,
        description="Seconds between processing status checks",
    )
    upload_poll_timeout: float = Field(
        default=120.0,
        description="Maximum seconds to wait for one uploaded item",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )

    model_config = SettingsConfigDict(
        env_prefix="MEERKAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        """Accept level names in any case."""
        return value.upper() if isinstance(value, str) else value

    @property
    def has_auth_fallback(self) -> bool:
        """Whether a fallback auth provider is configured."""
        return bool(self.fallback_supabase_url and self.fallback_supabase_anon_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
