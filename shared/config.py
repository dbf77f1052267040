"""Application-wide configuration helpers."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SECRET_FIELDS = {"openai_api_key"}


class Settings(BaseSettings):
    """Central configuration loaded from environment variables.

    Size and quality defaults are configuration rather than constants so a
    deployment can follow whatever the provider account supports.
    """

    model_config = SettingsConfigDict(
        env_prefix="PORTRAIT_",
        env_file=os.environ.get("PORTRAIT_ENV_FILE", ".env"),
        extra="ignore",
    )

    openai_api_key: str = Field("", description="Bearer token for the image provider")
    openai_base_url: str = Field(
        "https://api.openai.com/v1", description="Base URL of the provider REST API"
    )
    image_model: str = Field("gpt-image-1", description="Model used for edits and generations")
    moderation_model: str = Field(
        "omni-moderation-latest", description="Model used for content moderation"
    )
    moderation_enabled: bool = Field(True, description="Screen uploads and captions before generation")
    provider_timeout_sec: float = Field(120.0, description="Read timeout for outbound provider calls")

    rate_limit_max: int = Field(10, ge=1, description="Requests allowed per identity per window")
    rate_limit_window_sec: int = Field(60, ge=1, description="Length of the rate limit window")
    rate_limit_redis_url: Optional[str] = Field(
        None, description="Share limiter state through Redis when set"
    )

    max_upload_bytes: int = Field(5 * 1024 * 1024, description="Largest accepted upload")
    max_caption_length: int = Field(150, description="Longest accepted caption")
    allowed_sizes: List[str] = Field(
        default_factory=lambda: ["1024x1024", "1024x1536", "1536x1024"],
        description="Output sizes supported by the provider model",
    )
    default_size: str = Field("1024x1024", description="Size used when none or an invalid one is sent")
    default_quality: str = Field("low", description="Quality used when none or an invalid one is sent")

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = Field("INFO", description="Root log level")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings so modules can share the same instance."""

    return Settings()  # type: ignore[call-arg]


def settings_dict() -> Dict[str, Any]:
    """Expose settings as primitives, omitting credentials."""

    settings = get_settings()
    return settings.model_dump(exclude=SECRET_FIELDS)
