from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from limits.storage import MemoryStorage, RedisStorage

from shared.ratelimit import RateLimiter, RateWindow, build_rate_limiter, client_identity, mask_identity


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(time, "time", fake)
    return fake


def test_requests_up_to_max_are_allowed(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=10, window_seconds=60)

    decisions = [limiter.check("1.2.3.4") for _ in range(10)]

    assert all(decision.allowed for decision in decisions)
    assert all(decision.retry_after_sec == 0 for decision in decisions)
    denied = limiter.check("1.2.3.4")
    assert not denied.allowed
    assert denied.retry_after_sec == 60


def test_retry_after_counts_down_with_the_window(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60)
    limiter.check("a")

    clock.now += 59.2
    decision = limiter.check("a")

    assert not decision.allowed
    assert decision.retry_after_sec == 1


def test_expired_window_resets_counter(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=2, window_seconds=60)
    limiter.check("a")
    limiter.check("a")
    assert not limiter.check("a").allowed

    clock.now += 60

    assert limiter.check("a").allowed
    assert limiter.snapshot()["a"] == RateWindow(count=1, window_start=1_700_000_060_000)


def test_denied_requests_do_not_extend_the_window(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=10)
    limiter.check("a")
    for _ in range(5):
        clock.now += 1
        limiter.check("a")

    assert limiter.snapshot()["a"].count == 1
    clock.now += 5
    assert limiter.check("a").allowed


def test_identities_are_independent(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60)

    assert limiter.check("a").allowed
    assert limiter.check("b").allowed
    assert not limiter.check("a").allowed


def test_concurrent_checks_never_exceed_quota() -> None:
    limiter = RateLimiter(max_requests=50, window_seconds=60)
    results: List[bool] = []
    results_lock = threading.Lock()

    def worker() -> None:
        for _ in range(20):
            allowed = limiter.check("shared").allowed
            with results_lock:
                results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(results) == 50
    assert limiter.snapshot()["shared"].count == 50


def test_reset_forgets_every_identity(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60)
    limiter.check("a")

    limiter.reset()

    assert limiter.snapshot() == {}
    assert limiter.check("a").allowed


@pytest.mark.parametrize(
    ("headers", "expected"),
    [
        ({"x-forwarded-for": "203.0.113.5, 10.0.0.1"}, "203.0.113.5"),
        ({"x-forwarded-for": " 203.0.113.5 ", "x-real-ip": "198.51.100.1"}, "203.0.113.5"),
        ({"x-real-ip": " 198.51.100.1 "}, "198.51.100.1"),
        ({}, "unknown"),
    ],
)
def test_client_identity(headers: Dict[str, str], expected: str) -> None:
    assert client_identity(headers) == expected


@pytest.mark.parametrize(
    ("identity", "masked"),
    [
        ("192.168.1.20", "192.168.1.x"),
        ("2001:db8:85a3::7334", "2001:db8:85a3::x"),
        ("unknown", "unknown"),
    ],
)
def test_mask_identity(identity: str, masked: str) -> None:
    assert mask_identity(identity) == masked


def test_denied_request_reports_seconds_until_reset(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=2, window_seconds=60)
    limiter.check("a")
    clock.now += 17.5
    limiter.check("a")

    decision = limiter.check("a")

    assert not decision.allowed
    assert decision.retry_after_sec == 43


def test_snapshot_reports_window_start_and_count(clock: FakeClock) -> None:
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    limiter.check("a")
    clock.now += 3
    limiter.check("a")

    assert limiter.snapshot() == {"a": RateWindow(count=2, window_start=1_700_000_000_000)}


def test_build_rate_limiter_defaults_to_memory() -> None:
    limiter = build_rate_limiter(5, 30)

    assert isinstance(limiter.storage, MemoryStorage)
    assert limiter.max_requests == 5
    assert limiter.window_seconds == 30


def test_build_rate_limiter_uses_redis_storage_for_redis_url() -> None:
    limiter = build_rate_limiter(5, 30, "redis://localhost:6379/0")

    assert isinstance(limiter.storage, RedisStorage)
