from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class RateLimitEntry(BaseModel):
    ip: str
    count: int
    window_remaining_sec: int
    blocked: bool


class RateLimitStatsResponse(BaseModel):
    rate_limit_max: int
    rate_limit_window_sec: int
    active_ips: int
    total_requests_in_window: int
    blocked_ips: int
    entries: List[RateLimitEntry] = Field(default_factory=list)
    server_time_iso: str
