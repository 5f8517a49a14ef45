"""Per-endpoint request limiting with optional lockout."""

from __future__ import annotations

from .limiter import RateLimitDecision, RateLimiter
from .memory import InMemoryRateLimitStore
from .redis import RedisRateLimitStore

__all__: list[str] = [
    "RateLimitDecision",
    "RateLimiter",
    "InMemoryRateLimitStore",
    "RedisRateLimitStore",
]
