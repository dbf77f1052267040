from __future__ import annotations

import httpx
from fastapi import Depends, Request

from image.provider import ImageProvider
from moderation.gate import ModerationGate
from shared.config import Settings, get_settings
from shared.errors import RateLimitExceeded
from shared.ratelimit import RateLimiter, client_identity

from .services.generation import GenerationPipeline


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> str:
    """Count the call against its identity before anything else runs."""

    identity = client_identity(request.headers)
    decision = limiter.check(identity)
    if not decision.allowed:
        raise RateLimitExceeded(decision.retry_after_sec)
    return identity


def get_pipeline(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> GenerationPipeline:
    moderation = ModerationGate(
        client,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.moderation_model,
        enabled=settings.moderation_enabled,
    )
    provider = ImageProvider(
        client,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.image_model,
    )
    return GenerationPipeline(moderation, provider)
