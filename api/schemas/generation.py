from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class GeneratedImageResponse(BaseModel):
    url: str
    latency_ms: int
    cost_usd: float
    model_used: str
    size_used: str
    prompt_used: str
    image_dimensions: Optional[str] = None
    text_only: bool = False


class IdenticalOutputResponse(BaseModel):
    identical: bool = True
    message: str
    latency_ms: int
    cost_usd: float
    model_used: str
    size_used: str
    prompt_used: str
    image_dimensions: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
