"""Configuration models for the fetch-and-cache layer."""

import tempfile
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.fetch.constants import (
    CACHE_DIR_NAME,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    GZIP_CONTENT_TYPES,
    HTML_CONTENT_TYPES,
    JAVASCRIPT_CONTENT_TYPES,
    JSON_CONTENT_TYPE,
    TEXT_JSON_CONTENT_TYPES,
)


if TYPE_CHECKING:
    from src.settings.app import AppSettings


def default_cache_dir() -> Path:
    """Return the default base cache directory under the system temp dir."""
    return Path(tempfile.gettempdir()) / CACHE_DIR_NAME


def media_type(content_type: str | None) -> str | None:
    """Strip parameters from a Content-Type value.

    Args:
        content_type: Raw header value, e.g. "application/json; charset=utf-8".

    Returns:
        Lower-cased media type, or None when missing or blank.
    """
    if content_type is None:
        return None
    value = content_type.split(";", 1)[0].strip().lower()
    return value or None


class CacheNaming(str, Enum):
    """How promoted content files are named inside the cache directory.

    - CONTENT_HASH: <cache key hex>; distinct requests never share a slot
    - URL_BASENAME: last URL path segment, falling back to the cache key;
      URLs sharing a basename share a slot
    """

    CONTENT_HASH = "content_hash"
    URL_BASENAME = "url_basename"


class ContentTypePolicy(BaseModel):
    """Allow-list gate applied to 200 responses.

    application/json is always accepted while the gate is enabled; each
    tolerated legacy family is toggled independently.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    allow_missing: bool = False
    allow_javascript: bool = False
    allow_text_json: bool = False
    allow_html: bool = False
    allow_gzip: bool = False
    extra: list[str] = Field(default_factory=list)

    @field_validator("extra")
    @classmethod
    def normalize_extra(cls, v: list[str]) -> list[str]:
        """Lower-case and strip extra media types."""
        normalized = [item.strip().lower() for item in v]
        if any(not item for item in normalized):
            msg = "extra content types must not be blank"
            raise ValueError(msg)
        return normalized

    def allowed_types(self) -> frozenset[str]:
        """Get the set of accepted media types."""
        allowed = {JSON_CONTENT_TYPE, *self.extra}
        if self.allow_javascript:
            allowed |= JAVASCRIPT_CONTENT_TYPES
        if self.allow_text_json:
            allowed |= TEXT_JSON_CONTENT_TYPES
        if self.allow_html:
            allowed |= HTML_CONTENT_TYPES
        if self.allow_gzip:
            allowed |= GZIP_CONTENT_TYPES
        return frozenset(allowed)

    def accepts(self, content_type: str | None) -> bool:
        """Check a response Content-Type against the gate.

        Args:
            content_type: Raw Content-Type header value, or None.

        Returns:
            True if the response counts as the expected payload.
        """
        if not self.enabled:
            return True
        value = media_type(content_type)
        if value is None:
            return self.allow_missing
        return value in self.allowed_types()


class FetchConfig(BaseModel):
    """Configuration for the fetch-and-cache engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_dir: Path = Field(default_factory=default_cache_dir)
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_TIMEOUT_SECONDS
    )
    max_redirects: Annotated[int, Field(ge=0, le=20)] = DEFAULT_MAX_REDIRECTS
    cache_enabled: bool = Field(
        default=True,
        description="Persist validators and promote content into the cache",
    )
    naming: CacheNaming = CacheNaming.CONTENT_HASH
    content_types: ContentTypePolicy = Field(default_factory=ContentTypePolicy)

    @classmethod
    def from_settings(cls, settings: "AppSettings") -> "FetchConfig":
        """Build a config from environment settings.

        Args:
            settings: Loaded application settings.

        Returns:
            FetchConfig with values taken from settings.
        """
        return cls(
            base_dir=settings.cache_dir or default_cache_dir(),
            user_agent=settings.user_agent,
            timeout_seconds=settings.timeout_seconds,
            cache_enabled=settings.cache_enabled,
            naming=settings.cache_naming,
            content_types=ContentTypePolicy(enabled=settings.check_content_type),
        )
