from __future__ import annotations

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from shared.config import Settings, get_settings
from shared.errors import GenerationError
from shared.results import internal_error_envelope
from shared.telemetry import record_outcome

from ..dependencies import enforce_rate_limit, get_pipeline
from ..schemas.generation import ErrorResponse, GeneratedImageResponse, IdenticalOutputResponse
from ..services.generation import GenerationPipeline, build_generation_request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


async def _read_upload(upload: Optional[UploadFile], limit: int) -> Optional[bytes]:
    # One byte past the limit is enough to reject an oversize upload.
    if upload is None:
        return None
    return await upload.read(limit + 1)


@router.post(
    "/generate-image",
    responses={
        200: {"model": Union[GeneratedImageResponse, IdenticalOutputResponse]},
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def generate_image(
    identity: str = Depends(enforce_rate_limit),
    image: Optional[UploadFile] = File(None),
    topic: Optional[str] = Form(None),
    caption: Optional[str] = Form(None),
    quality: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    no_image: Optional[str] = Form(None),
    classifier_label: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> JSONResponse:
    try:
        request = build_generation_request(
            settings,
            image=await _read_upload(image, settings.max_upload_bytes),
            image_mime_type=image.content_type if image is not None else None,
            topic=topic,
            caption=caption,
            quality=quality,
            size=size,
            no_image=no_image,
            classifier_label=classifier_label,
        )
        envelope = await pipeline.run(request)
    except GenerationError:
        raise
    except Exception:
        logger.exception("Server error in generate-image route (identity=%s)", identity)
        failure = internal_error_envelope()
        record_outcome(failure.outcome.value)
        return JSONResponse(failure.body, status_code=failure.status_code)

    record_outcome(envelope.outcome.value)
    return JSONResponse(envelope.to_dict())
