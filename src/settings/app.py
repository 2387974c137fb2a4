"""Application settings powered by Pydantic BaseSettings."""

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.fetch.config import CacheNaming
from src.fetch.constants import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JSON_FETCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cache_dir: Path | None = Field(
        default=None, description="Base cache directory (system temp if unset)"
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0.0)
    cache_enabled: bool = True
    cache_naming: CacheNaming = CacheNaming.CONTENT_HASH
    check_content_type: bool = True
    log_level: str = Field(default="INFO")
    json_logs: bool = False

    @property
    def log_level_value(self) -> int:
        """Resolve log_level to a logging module level."""
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
