"""Per-source rate limiting."""

from .limiter import DEFAULT_LIMITS, RateLimiter, rate_limit_key
from .stores import (
    MemoryRateLimitStore,
    RateLimitConfig,
    RateLimitState,
    RateLimitStore,
    RedisRateLimitStore,
)

__all__ = [
    "DEFAULT_LIMITS",
    "MemoryRateLimitStore",
    "RateLimitConfig",
    "RateLimitState",
    "RateLimitStore",
    "RateLimiter",
    "RedisRateLimitStore",
    "rate_limit_key",
]
