"""Exception taxonomy for the generation pipeline."""
from __future__ import annotations

from typing import Any, Dict, Optional

PROVIDER_FAILURE_MESSAGE = "Image generation failed. Please try again."
INTERNAL_FAILURE_MESSAGE = "Server error. Please try again."


class GenerationError(Exception):
    """Base class for failures that terminate a generation request.

    ``message`` is safe to return to untrusted callers. Anything diagnostic
    belongs in the log, not in the exception text shown to clients.
    """

    status_code: int = 500
    outcome: str = "internal_error"

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class CallerError(GenerationError):
    """Raised for bad or missing input. No remote call has been made."""

    status_code = 400
    outcome = "caller_error"


class ModerationRejected(CallerError):
    """Raised when the moderation provider flags the upload or caption."""

    def __init__(self, categories: set[str]) -> None:
        super().__init__(
            "Content policy violation",
            detail="The uploaded image or text was flagged as inappropriate and cannot be processed.",
        )
        self.categories = set(categories)


class RateLimitExceeded(GenerationError):
    status_code = 429
    outcome = "rate_limited"

    def __init__(self, retry_after_sec: int) -> None:
        self.retry_after_sec = max(1, int(retry_after_sec))
        super().__init__(
            f"Too many requests. Please wait {self.retry_after_sec} seconds before trying again."
        )


class ProviderError(GenerationError):
    """Raised when the generation provider fails or answers with an unknown shape."""

    status_code = 502
    outcome = "provider_error"

    def __init__(self, reason: str) -> None:
        super().__init__(PROVIDER_FAILURE_MESSAGE)
        self.reason = reason
