"""Per-identity fixed window rate limiting.

Counting is delegated to the ``limits`` fixed window strategy, so the
increment is atomic in whichever storage backs it: the in-process memory
store by default, or Redis when a ``redis://`` URL is configured.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Set

from limits import RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

MEMORY_STORAGE_URI = "memory://"


@dataclass
class RateWindow:
    """Request count for one identity, valid only relative to ``window_start``.

    ``window_start`` is expressed in milliseconds since the epoch.
    """

    count: int
    window_start: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_sec: int = 0


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """Fixed window limiter over a ``limits`` storage backend.

    The storage only knows counter keys, so the identities seen by this
    process are kept in a small registry for :meth:`snapshot`.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: int = 60,
        *,
        storage_uri: str = MEMORY_STORAGE_URI,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.window_ms = window_seconds * 1000
        self.storage: Storage = storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self.storage)
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)
        self._identities: Set[str] = set()
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        return _now_ms()

    def check(self, identity: str) -> RateLimitDecision:
        """Count a request for ``identity`` and decide whether it may proceed."""

        with self._lock:
            self._identities.add(identity)
        if self._strategy.hit(self._item, identity):
            return RateLimitDecision(allowed=True)
        stats = self._strategy.get_window_stats(self._item, identity)
        remaining_ms = int(stats.reset_time * 1000) - self.now_ms()
        return RateLimitDecision(
            allowed=False,
            retry_after_sec=max(1, math.ceil(remaining_ms / 1000)),
        )

    def window_for(self, identity: str) -> RateWindow:
        stats = self._strategy.get_window_stats(self._item, identity)
        return RateWindow(
            count=self.max_requests - stats.remaining,
            window_start=int(stats.reset_time * 1000) - self.window_ms,
        )

    def snapshot(self) -> Dict[str, RateWindow]:
        """Return the current window of every identity seen so far."""

        with self._lock:
            identities = sorted(self._identities)
        return {identity: self.window_for(identity) for identity in identities}

    def reset(self) -> None:
        """Forget every tracked identity."""

        with self._lock:
            identities = list(self._identities)
            self._identities.clear()
        for identity in identities:
            self._strategy.clear(self._item, identity)

    def window_remaining_sec(self, window: RateWindow, now_ms: Optional[int] = None) -> int:
        now = self.now_ms() if now_ms is None else now_ms
        return max(0, math.ceil((self.window_ms - (now - window.window_start)) / 1000))

    def is_blocked(self, window: RateWindow) -> bool:
        return window.count >= self.max_requests


def build_rate_limiter(
    max_requests: int,
    window_seconds: int,
    redis_url: Optional[str] = None,
) -> RateLimiter:
    """Share counters through Redis when a URL is configured, else keep them in memory."""

    storage_uri = redis_url or MEMORY_STORAGE_URI
    logger.info(
        "Rate limiter: %d requests per %ds (%s storage)",
        max_requests,
        window_seconds,
        "redis" if redis_url else "memory",
    )
    return RateLimiter(max_requests, window_seconds, storage_uri=storage_uri)


def client_identity(headers: Mapping[str, str]) -> str:
    """Derive the rate limit key from proxy headers."""

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return "unknown"


def mask_identity(identity: str) -> str:
    """Hide the host part of an address: ``1.2.3.4`` becomes ``1.2.3.x``."""

    if "." in identity:
        head, sep, tail = identity.rpartition(".")
        return f"{head}.x" if sep and tail.isdigit() else identity
    if ":" in identity:
        head, _, _ = identity.rpartition(":")
        return f"{head}:x"
    return identity
