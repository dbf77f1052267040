"""Uniform response envelopes for generation outcomes."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from image.identity import IDENTICAL_MESSAGE

from .errors import GenerationError, INTERNAL_FAILURE_MESSAGE


class Outcome(str, Enum):
    """Every request ends in exactly one of these."""

    GENERATED = "generated"
    IDENTICAL = "identical"
    CALLER_ERROR = "caller_error"
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class ResultEnvelope:
    """Successful result carrying either a display URL or the identical flag."""

    cost_usd: float
    latency_ms: int
    model_used: str
    size_used: str
    prompt_used: str
    url: Optional[str] = None
    identical: bool = False
    image_dimensions: Optional[str] = None
    text_only: bool = False

    def __post_init__(self) -> None:
        if self.identical == (self.url is not None):
            raise ValueError("A result needs exactly one of a display url or the identical flag")

    @property
    def outcome(self) -> Outcome:
        return Outcome.IDENTICAL if self.identical else Outcome.GENERATED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "latency_ms": self.latency_ms,
            "cost_usd": self.cost_usd,
            "model_used": self.model_used,
            "size_used": self.size_used,
            "prompt_used": self.prompt_used,
            "image_dimensions": self.image_dimensions,
        }
        if self.identical:
            payload["identical"] = True
            payload["message"] = IDENTICAL_MESSAGE
        else:
            payload["url"] = self.url
            payload["text_only"] = self.text_only
        return payload


@dataclass(frozen=True)
class ErrorEnvelope:
    status_code: int
    outcome: Outcome
    body: Dict[str, Any]
    retry_after_sec: Optional[int] = None

    @property
    def headers(self) -> Dict[str, str]:
        if self.retry_after_sec is None:
            return {}
        return {"Retry-After": str(self.retry_after_sec)}


def error_envelope(exc: GenerationError) -> ErrorEnvelope:
    return ErrorEnvelope(
        status_code=exc.status_code,
        outcome=Outcome(exc.outcome),
        body=exc.to_dict(),
        retry_after_sec=getattr(exc, "retry_after_sec", None),
    )


def internal_error_envelope() -> ErrorEnvelope:
    return ErrorEnvelope(
        status_code=500,
        outcome=Outcome.INTERNAL_ERROR,
        body={"error": INTERNAL_FAILURE_MESSAGE},
    )
