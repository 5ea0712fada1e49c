from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    window_seconds: float
    max_requests: int
    message: str
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False


@dataclass(frozen=True)
class RateLimitDecision:
    rule: RateLimitRule
    key: str
    allowed: bool
    remaining: int
    reset_after_seconds: float
    window_started_at: float

    def headers(self) -> dict[str, str]:
        reset = str(max(0, math.ceil(self.reset_after_seconds)))
        headers = {
            "RateLimit-Limit": str(self.rule.max_requests),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": reset,
        }
        if not self.allowed:
            headers["Retry-After"] = reset
        return headers
