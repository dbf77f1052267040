"""Prometheus instrumentation for the generation pipeline."""
from __future__ import annotations

from typing import Tuple

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUESTS = Counter(
    "portrait_requests_total",
    "Generation requests partitioned by terminal outcome.",
    ["outcome"],
)
MODERATION = Counter(
    "portrait_moderation_total",
    "Moderation gate results (clean, flagged, fail_open, skipped).",
    ["result"],
)
PROVIDER_LATENCY = Histogram(
    "portrait_provider_latency_seconds",
    "Wall-clock duration of the single outbound generation call.",
    ["mode"],
    buckets=(1, 2.5, 5, 10, 20, 30, 45, 60, 90, 120),
)


def record_outcome(outcome: str) -> None:
    REQUESTS.labels(outcome=outcome).inc()


def record_moderation(result: str) -> None:
    MODERATION.labels(result=result).inc()


def observe_provider_latency(mode: str, latency_ms: int) -> None:
    PROVIDER_LATENCY.labels(mode=mode).observe(latency_ms / 1000)


def render_metrics() -> Tuple[bytes, str]:
    """Return the exposition payload and its content type."""

    return generate_latest(), CONTENT_TYPE_LATEST
