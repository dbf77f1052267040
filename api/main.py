from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from shared.config import get_settings, settings_dict
from shared.errors import CallerError, GenerationError
from shared.logs import configure_logging
from shared.pipeline import PIPELINE_ORDER
from shared.ratelimit import build_rate_limiter
from shared.results import error_envelope
from shared.telemetry import record_outcome, render_metrics

from .routes import generate, stats

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)


description = """
Themed pet portrait generation API.

Every generation request passes through:
1. **rate_limit** per client address.
2. **moderation** of the upload and caption.
3. **prompt** composition from the topic template.
4. **dispatch** to the provider's edit or text-only endpoint.
5. **identity** detection of unchanged edits.
6. **result** envelope assembly.
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.provider_timeout_sec, connect=10.0)
    )
    try:
        yield
    finally:
        await app.state.http_client.aclose()


app = FastAPI(
    title="Pet Portrait Studio API",
    description=description,
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "generation", "description": "Themed image generation"},
        {"name": "stats", "description": "Rate limiter telemetry"},
    ],
)
app.state.rate_limiter = build_rate_limiter(
    settings.rate_limit_max,
    settings.rate_limit_window_sec,
    settings.rate_limit_redis_url,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(generate.router)
app.include_router(stats.router)


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    envelope = error_envelope(exc)
    record_outcome(envelope.outcome.value)
    if envelope.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, getattr(exc, "reason", exc))
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(envelope.body, status_code=envelope.status_code, headers=envelope.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        problems.append(f"{field}: {error.get('msg', 'invalid value')}")
    return await generation_error_handler(
        request, CallerError("Invalid request", detail="; ".join(problems))
    )


@app.get("/health", tags=["meta"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/settings", tags=["meta"])
def read_settings() -> dict:
    return settings_dict()


@app.get("/pipeline", tags=["meta"])
def pipeline_flow() -> dict[str, list[str]]:
    return {"stages": PIPELINE_ORDER}


@app.get("/metrics", tags=["meta"], include_in_schema=False)
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
