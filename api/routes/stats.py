from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from shared.ratelimit import RateLimiter, mask_identity

from ..dependencies import get_rate_limiter
from ..schemas.stats import RateLimitEntry, RateLimitStatsResponse

router = APIRouter(tags=["stats"])


@router.get("/stats", response_model=RateLimitStatsResponse)
def rate_limit_stats(limiter: RateLimiter = Depends(get_rate_limiter)) -> RateLimitStatsResponse:
    """Masked, read-only view of the limiter windows."""

    now = limiter.now_ms()
    entries = []
    total_in_window = 0
    for identity, window in sorted(limiter.snapshot().items()):
        remaining = limiter.window_remaining_sec(window, now)
        if remaining > 0:
            total_in_window += window.count
        entries.append(
            RateLimitEntry(
                ip=mask_identity(identity),
                count=window.count,
                window_remaining_sec=remaining,
                blocked=remaining > 0 and limiter.is_blocked(window),
            )
        )

    return RateLimitStatsResponse(
        rate_limit_max=limiter.max_requests,
        rate_limit_window_sec=limiter.window_seconds,
        active_ips=len(entries),
        total_requests_in_window=total_in_window,
        blocked_ips=sum(1 for entry in entries if entry.blocked),
        entries=entries,
        server_time_iso=datetime.now(UTC).isoformat(),
    )
