from __future__ import annotations

import logging
from typing import Optional, assert_never

from image.identity import detect_identical
from image.provider import ImageProvider, estimate_cost, read_dimensions
from moderation.gate import ModerationGate
from prompts.library import compose, normalize_topic
from shared.config import Settings
from shared.errors import CallerError, ModerationRejected, ProviderError
from shared.models import (
    DispatchMode,
    GenerationRequest,
    ImageUrl,
    InlineImage,
    ProviderFailure,
    Quality,
    find_blocked_term,
    sanitize_classifier_label,
)
from shared.results import ResultEnvelope

logger = logging.getLogger(__name__)


def build_generation_request(
    settings: Settings,
    *,
    image: Optional[bytes],
    image_mime_type: Optional[str] = None,
    topic: Optional[str] = None,
    caption: Optional[str] = None,
    quality: Optional[str] = None,
    size: Optional[str] = None,
    no_image: Optional[str] = None,
    classifier_label: Optional[str] = None,
) -> GenerationRequest:
    """Validate raw form values. Raises :class:`CallerError` on bad input."""

    text_only = no_image == "1"
    if not image:
        image = None
    if image is None and not text_only:
        raise CallerError("No image uploaded")

    if image is not None:
        if len(image) > settings.max_upload_bytes:
            limit_mb = settings.max_upload_bytes // (1024 * 1024)
            raise CallerError(f"Image too large (max {limit_mb}MB)")
        if read_dimensions(image) is None:
            raise CallerError(
                "Unsupported image",
                detail="The upload could not be read as an image.",
            )

    caption = caption or ""
    if len(caption) > settings.max_caption_length:
        raise CallerError(
            "Caption too long",
            detail=f"Keep the caption to {settings.max_caption_length} characters or fewer.",
        )
    if find_blocked_term(caption):
        raise CallerError(
            "Caption contains inappropriate content",
            detail="Keywords contain inappropriate content. Please edit and try again.",
        )

    try:
        quality_value = Quality(quality) if quality else Quality(settings.default_quality)
    except ValueError:
        quality_value = Quality(settings.default_quality)
    size_value = size if size in settings.allowed_sizes else settings.default_size

    return GenerationRequest(
        topic=normalize_topic(topic),
        caption=caption,
        quality=quality_value,
        size=size_value,
        text_only=text_only,
        image=image,
        image_mime_type=image_mime_type or "image/png",
        classifier_hint=sanitize_classifier_label(classifier_label),
    )


class GenerationPipeline:
    """Runs moderation, prompt composition, dispatch and identity detection.

    Rate limiting happens before the request body is validated, in the route
    dependency, so a throttled client never reaches this object.
    """

    def __init__(self, moderation: ModerationGate, provider: ImageProvider) -> None:
        self.moderation = moderation
        self.provider = provider

    async def run(self, request: GenerationRequest) -> ResultEnvelope:
        flagged = await self.moderation.moderate(
            request.image,
            request.caption or None,
            mime_type=request.image_mime_type,
        )
        if flagged is not None:
            raise ModerationRejected(flagged)

        prompt = compose(
            request.topic,
            request.caption,
            has_image=request.uses_edit,
            classifier_hint=request.classifier_hint,
        )
        logger.info("topic=%s caption=%r prompt=%r", request.topic, request.caption, prompt)

        result = await self.provider.dispatch(request, prompt)
        response = result.response
        text_only = result.mode is DispatchMode.TEXT_ONLY
        common = dict(
            cost_usd=estimate_cost(request.quality),
            latency_ms=result.latency_ms,
            model_used=self.provider.model,
            size_used=request.size,
            prompt_used=prompt,
            image_dimensions=result.image_dimensions,
        )

        if isinstance(response, ProviderFailure):
            raise ProviderError(response.reason)
        if isinstance(response, ImageUrl):
            # Hosted results are not fetched back for comparison.
            return ResultEnvelope(url=response.url, text_only=text_only, **common)
        if isinstance(response, InlineImage):
            if (
                result.mode is DispatchMode.EDIT
                and request.image is not None
                and detect_identical(request.image, response.data)
            ):
                logger.warning("Provider returned the uploaded image unchanged")
                return ResultEnvelope(identical=True, **common)
            return ResultEnvelope(url=response.data_url(), text_only=text_only, **common)
        assert_never(response)
