"""
gateway/models/rate_limit.py

Fixed-window counter state and admission decisions.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RateLimitCounter:
    """Counter for one key; replaced wholesale on every update."""
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    key: Optional[str]
    limit: Optional[int]
    remaining: Optional[int]
    reset_at: Optional[float]
    now: float

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    def headers(self) -> dict:
        if self.unlimited:
            return {}
        reset_in = max(0, int(round((self.reset_at or self.now) - self.now)))
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining or 0)),
            "X-RateLimit-Reset": str(reset_in),
        }
