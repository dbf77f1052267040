"""Dispatch to the image provider's edit and text-only generation endpoints."""
from __future__ import annotations

import binascii
import io
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from shared.errors import CallerError
from shared.models import (
    DispatchMode,
    GenerationRequest,
    ImageUrl,
    InlineImage,
    ProviderFailure,
    ProviderResponse,
    Quality,
)
from shared.telemetry import observe_provider_latency

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-image-1"

# Rough per-image estimates for gpt-image-1; advisory only.
COST_TABLE: Dict[str, float] = {
    Quality.LOW.value: 0.02,
    Quality.MEDIUM.value: 0.07,
    Quality.HIGH.value: 0.19,
}


def estimate_cost(quality: Quality | str) -> float:
    key = quality.value if isinstance(quality, Quality) else str(quality)
    return COST_TABLE.get(key, COST_TABLE[Quality.MEDIUM.value])


def read_dimensions(data: bytes) -> Optional[Tuple[int, int]]:
    """Read pixel dimensions from the image header without decoding pixels."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None


def format_dimensions(size: Optional[Tuple[int, int]]) -> Optional[str]:
    if size is None:
        return None
    width, height = size
    return f"{width}x{height}"


@dataclass(frozen=True)
class DispatchResult:
    response: ProviderResponse
    latency_ms: int
    mode: DispatchMode
    image_dimensions: Optional[str] = None


class ImageProvider:
    """Client for the provider's ``/images/edits`` and ``/images/generations``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = DEFAULT_MODEL,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def dispatch(self, request: GenerationRequest, prompt: str) -> DispatchResult:
        """Send exactly one outbound call for ``request`` and normalise the answer."""

        if request.image is None and not request.text_only:
            raise CallerError("No image uploaded")
        if request.image is not None and not request.text_only:
            return await self._edit(request, request.image, prompt)
        return await self._generate(request, prompt)

    async def _generate(self, request: GenerationRequest, prompt: str) -> DispatchResult:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "quality": request.quality.value,
            "size": request.size,
        }
        response, latency_ms = await self._timed_post(
            f"{self.base_url}/images/generations",
            DispatchMode.TEXT_ONLY,
            json=payload,
        )
        return DispatchResult(
            response=response,
            latency_ms=latency_ms,
            mode=DispatchMode.TEXT_ONLY,
        )

    async def _edit(self, request: GenerationRequest, image: bytes, prompt: str) -> DispatchResult:
        dimensions = format_dimensions(read_dimensions(image))
        files = {"image": ("input.png", image, request.image_mime_type)}
        data = {
            "model": self.model,
            "prompt": prompt,
            "quality": request.quality.value,
            "size": request.size,
        }
        response, latency_ms = await self._timed_post(
            f"{self.base_url}/images/edits",
            DispatchMode.EDIT,
            data=data,
            files=files,
        )
        return DispatchResult(
            response=response,
            latency_ms=latency_ms,
            mode=DispatchMode.EDIT,
            image_dimensions=dimensions,
        )

    async def _timed_post(
        self, url: str, mode: DispatchMode, **kwargs: Any
    ) -> Tuple[ProviderResponse, int]:
        started = time.perf_counter()
        try:
            response = await self.client.post(url, headers=self.headers, **kwargs)
        except httpx.HTTPError as exc:
            latency_ms = int((time.perf_counter() - started) * 1000)
            logger.error("Provider transport error (%s): %s", mode.value, exc)
            return ProviderFailure(status_code=None, body=str(exc), reason="transport"), latency_ms
        latency_ms = int((time.perf_counter() - started) * 1000)
        observe_provider_latency(mode.value, latency_ms)
        return normalize_response(response, mode), latency_ms


def normalize_response(response: httpx.Response, mode: DispatchMode) -> ProviderResponse:
    """Collapse the provider payload into one of the three response variants."""

    body = response.text
    if not response.is_success:
        logger.error("Provider error (%s) %s: %s", mode.value, response.status_code, body)
        return ProviderFailure(status_code=response.status_code, body=body, reason="status")

    try:
        first = response.json()["data"][0]
    except (ValueError, KeyError, IndexError, TypeError):
        first = None
    if not isinstance(first, dict):
        logger.error("Unexpected provider response (%s): %s", mode.value, body[:500])
        return ProviderFailure(status_code=response.status_code, body=body, reason="shape")

    encoded = first.get("b64_json")
    if encoded is not None and not isinstance(encoded, str):
        logger.error("Provider returned non-text image data (%s)", mode.value)
        return ProviderFailure(status_code=response.status_code, body=body, reason="encoding")
    if encoded:
        try:
            return InlineImage.from_base64(encoded)
        except (binascii.Error, ValueError):
            logger.error("Provider returned undecodable image data (%s)", mode.value)
            return ProviderFailure(status_code=response.status_code, body=body, reason="encoding")
    url = first.get("url")
    if isinstance(url, str) and url:
        return ImageUrl(url=url)

    logger.error("No usable image in provider response (%s): %s", mode.value, body[:500])
    return ProviderFailure(status_code=response.status_code, body=body, reason="shape")
