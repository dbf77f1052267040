"""Order of the rate limit→moderation→prompt→dispatch→identity→result pipeline."""
from __future__ import annotations

from typing import List

PIPELINE_ORDER: List[str] = [
    "rate_limit",
    "moderation",
    "prompt",
    "dispatch",
    "identity",
    "result",
]
