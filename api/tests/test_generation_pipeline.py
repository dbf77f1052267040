from __future__ import annotations

import asyncio
import base64
import io
import sys
from pathlib import Path
from typing import List, Optional, Set

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import httpx
import pytest
from PIL import Image

from api.services.generation import GenerationPipeline, build_generation_request
from image.provider import ImageProvider
from moderation.gate import ModerationGate
from shared.config import Settings
from shared.errors import CallerError, ModerationRejected, ProviderError
from shared.models import Quality
from shared.results import Outcome


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (10, 20), "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="k", openai_base_url="https://provider.test/v1")


class StubModeration(ModerationGate):
    def __init__(self, flagged: Optional[Set[str]] = None) -> None:
        self.flagged = flagged
        self.calls = 0

    async def moderate(self, image, text, *, mime_type="image/png"):
        self.calls += 1
        return self.flagged


def _pipeline(edit_payload: dict, moderation: Optional[ModerationGate] = None):
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=edit_payload)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = ImageProvider(client, api_key="k", base_url="https://provider.test/v1")
    return GenerationPipeline(moderation or StubModeration(), provider), seen


def test_url_responses_never_reach_identity_detection(
    settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls: List[tuple] = []
    monkeypatch.setattr(
        "api.services.generation.detect_identical",
        lambda *args: calls.append(args) or True,
    )
    pipeline, _ = _pipeline({"data": [{"url": "https://cdn/out.png"}]})
    request = build_generation_request(settings, image=_png())

    envelope = asyncio.run(pipeline.run(request))

    assert calls == []
    assert envelope.outcome is Outcome.GENERATED
    assert envelope.url == "https://cdn/out.png"


def test_identical_inline_output_is_flagged(settings: Settings) -> None:
    image = _png()
    pipeline, _ = _pipeline({"data": [{"b64_json": base64.b64encode(image).decode()}]})

    envelope = asyncio.run(pipeline.run(build_generation_request(settings, image=image)))

    assert envelope.outcome is Outcome.IDENTICAL
    assert envelope.url is None
    assert envelope.to_dict()["identical"] is True


def test_text_only_inline_output_is_never_compared(settings: Settings) -> None:
    image = _png()
    pipeline, seen = _pipeline({"data": [{"b64_json": base64.b64encode(image).decode()}]})
    request = build_generation_request(settings, image=image, no_image="1")

    envelope = asyncio.run(pipeline.run(request))

    assert envelope.outcome is Outcome.GENERATED
    assert envelope.text_only is True
    assert seen[0].url.path.endswith("/images/generations")


def test_flagged_content_stops_before_dispatch(settings: Settings) -> None:
    moderation = StubModeration(flagged={"violence"})
    pipeline, seen = _pipeline({"data": [{"url": "https://cdn/out.png"}]}, moderation)

    with pytest.raises(ModerationRejected) as excinfo:
        asyncio.run(pipeline.run(build_generation_request(settings, image=_png())))

    assert excinfo.value.categories == {"violence"}
    assert seen == []


def test_flagged_verdict_without_categories_still_rejects(settings: Settings) -> None:
    pipeline, seen = _pipeline({"data": []}, StubModeration(flagged=set()))

    with pytest.raises(ModerationRejected):
        asyncio.run(pipeline.run(build_generation_request(settings, image=_png())))
    assert seen == []


def test_provider_failure_raises_provider_error(settings: Settings) -> None:
    pipeline, _ = _pipeline({"data": []})

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(pipeline.run(build_generation_request(settings, image=_png())))
    assert excinfo.value.status_code == 502


def test_form_normalisation(settings: Settings) -> None:
    request = build_generation_request(
        settings,
        image=None,
        no_image="1",
        topic="nope",
        quality="medium",
        size="1536x1024",
        classifier_label="  Siamese cat <script>  ",
    )

    assert request.topic == "celebration"
    assert request.quality is Quality.MEDIUM
    assert request.size == "1536x1024"
    assert request.classifier_hint == "Siamese cat script"
    assert request.text_only and not request.has_image


def test_classifier_label_is_capped(settings: Settings) -> None:
    request = build_generation_request(
        settings, image=None, no_image="1", classifier_label="x" * 200
    )

    assert request.classifier_hint == "x" * 80


def test_no_image_flag_other_than_one_is_not_text_only(settings: Settings) -> None:
    with pytest.raises(CallerError):
        build_generation_request(settings, image=None, no_image="true")


def test_blocked_terms_match_whole_words_only(settings: Settings) -> None:
    request = build_generation_request(settings, image=_png(), caption="first class grass")
    assert request.caption == "first class grass"

    with pytest.raises(CallerError):
        build_generation_request(settings, image=_png(), caption="what a BITCH")
