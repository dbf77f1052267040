"""Content moderation performed before any paid generation call."""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Set

import httpx

from shared.models import ModerationVerdict
from shared.telemetry import record_moderation

logger = logging.getLogger(__name__)

DEFAULT_MODERATION_MODEL = "omni-moderation-latest"


class ModerationGate:
    """Screens the upload and caption with the provider's moderation endpoint.

    Outages fail open: an unreachable or misbehaving moderation service must
    not take image generation down with it. A flagged verdict always fails
    closed.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = DEFAULT_MODERATION_MODEL,
        enabled: bool = True,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.enabled = enabled

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/moderations"

    @staticmethod
    def build_input(
        image: Optional[bytes],
        text: Optional[str],
        mime_type: str = "image/png",
    ) -> List[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = []
        if text:
            parts.append({"type": "text", "text": text})
        if image:
            encoded = base64.b64encode(image).decode("ascii")
            parts.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                }
            )
        return parts

    async def moderate(
        self,
        image: Optional[bytes],
        text: Optional[str],
        *,
        mime_type: str = "image/png",
    ) -> Optional[Set[str]]:
        """Return the flagged categories, or ``None`` when content may proceed."""

        parts = self.build_input(image, text, mime_type)
        if not parts:
            return None
        if not self.enabled or not self.api_key:
            logger.debug("Moderation disabled or unconfigured, skipping check")
            record_moderation("skipped")
            return None

        verdict = await self.classify(parts)
        if verdict is None:
            return None
        if not verdict.flagged:
            record_moderation("clean")
            return None
        record_moderation("flagged")
        logger.warning("Moderation flagged content: %s", sorted(verdict.categories))
        return set(verdict.categories)

    async def classify(self, parts: List[Dict[str, Any]]) -> Optional[ModerationVerdict]:
        """Call the moderation endpoint; ``None`` means the check was skipped."""

        try:
            response = await self.client.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"model": self.model, "input": parts},
            )
        except httpx.HTTPError as exc:
            return self._fail_open(f"transport error: {exc}")

        if not response.is_success:
            return self._fail_open(f"status {response.status_code}: {response.text}")

        try:
            result = response.json()["results"][0]
        except (ValueError, KeyError, IndexError, TypeError):
            return self._fail_open(f"unparseable body: {response.text[:500]}")
        if not isinstance(result, dict):
            return self._fail_open(f"unexpected result shape: {result!r}")

        flagged = bool(result.get("flagged"))
        categories = result.get("categories") or {}
        if not isinstance(categories, dict):
            categories = {}
        return ModerationVerdict(
            flagged=flagged,
            categories=frozenset(name for name, hit in categories.items() if hit is True),
        )

    def _fail_open(self, reason: str) -> None:
        logger.warning("Moderation API error, skipping check: %s", reason)
        record_moderation("fail_open")
        return None
