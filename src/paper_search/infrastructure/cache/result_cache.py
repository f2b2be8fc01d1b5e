"""
Result Cache

Read-through memoization of source results, keyed by ``SourceQuery.cache_key``.

The cache talks to one configured primary backend (memory or Redis). When a
distributed primary cannot be reached, the same call is served by an
in-process fallback with identical semantics and a circuit breaker keeps the
dead backend out of the request path until it recovers. No public method
raises.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from paper_search.core.async_utils import CircuitBreaker
from paper_search.core.exceptions import CacheUnavailableError, CircuitOpenError

from .backends import CacheBackend, MemoryCacheBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 3600.0
SEARCH_RESULT_TTL = 86400.0


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    errors: int = 0

    @property
    def total_requests(self) -> int:
        """Total cache requests."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Cache hit rate (0-1)."""
        total = self.total_requests
        return self.hits / total if total > 0 else 0.0

    def reset(self) -> None:
        """Reset statistics."""
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.errors = 0


class ResultCache:
    """
    Cache facade with graceful degradation.

    Example:
        cache = ResultCache(RedisCacheBackend("redis://cache:6379/0"))

        cached = await cache.get(query.cache_key)
        if cached is None:
            cached = await fetch()
            await cache.set(query.cache_key, cached, ttl=SEARCH_RESULT_TTL)
    """

    def __init__(
        self,
        primary: CacheBackend | None = None,
        *,
        default_ttl: float = DEFAULT_TTL,
        max_size: int = 1024,
        timer: Callable[[], float] = time.monotonic,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self._default_ttl = default_ttl
        self._fallback = MemoryCacheBackend(max_size=max_size, timer=timer)
        self._primary: CacheBackend = primary or self._fallback
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            name=f"cache:{self._primary.name}",
        )
        self._stats = CacheStats()
        self._degraded = False

    @property
    def backend_name(self) -> str:
        return self._primary.name

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    async def _call(self, operation: str, fn: Callable[[CacheBackend], Awaitable[T]]) -> T:
        """Run ``fn`` on the primary, or on the fallback if the primary fails."""
        if self._primary is self._fallback:
            return await fn(self._fallback)

        try:
            async with self._breaker:
                result = await fn(self._primary)
        except (CacheUnavailableError, CircuitOpenError) as e:
            self._mark_degraded(operation, e)
            return await fn(self._fallback)
        except Exception as e:
            logger.exception(f"Cache {operation} failed on {self._primary.name}")
            self._mark_degraded(operation, e)
            return await fn(self._fallback)

        if self._degraded:
            logger.info(f"Cache backend {self._primary.name} recovered")
            self._degraded = False
        return result

    def _mark_degraded(self, operation: str, error: Exception) -> None:
        self._stats.errors += 1
        if not self._degraded:
            logger.warning(
                f"Cache backend {self._primary.name} unavailable during {operation} ({error}); "
                "serving from in-process cache"
            )
        self._degraded = True

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Cached value or None on miss/expiry."""
        value = await self._call("get", lambda b: b.get(key))
        if value is None:
            self._stats.misses += 1
        else:
            self._stats.hits += 1
            logger.debug(f"Cache hit: {key}")
        return value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Store ``value`` for ``ttl`` seconds (default TTL when omitted)."""
        if value is None:
            return False
        lifetime = ttl if ttl and ttl > 0 else self._default_ttl
        await self._call("set", lambda b: b.set(key, value, lifetime))
        self._stats.sets += 1
        return True

    async def delete(self, key: str) -> bool:
        return await self._call("delete", lambda b: b.delete(key))

    async def has(self, key: str) -> bool:
        return await self._call("has", lambda b: b.has(key))

    async def flush(self) -> int:
        """Drop every entry (primary and fallback) and reset statistics."""
        removed = await self._call("flush", lambda b: b.flush())
        if self._primary is not self._fallback:
            removed += await self._fallback.flush()
        self._stats.reset()
        logger.info(f"Cache flushed ({removed} entries)")
        return removed

    async def keys(self, pattern: str = "*") -> list[str]:
        return await self._call("keys", lambda b: b.keys(pattern))

    async def mget(self, keys: Iterable[str]) -> dict[str, Any]:
        """Values for the keys that are present."""
        found: dict[str, Any] = {}
        for key in keys:
            value = await self.get(key)
            if value is not None:
                found[key] = value
        return found

    async def mset(self, items: Mapping[str, Any], ttl: float | None = None) -> int:
        """Store several values with one TTL; returns how many were stored."""
        stored = 0
        for key, value in items.items():
            if await self.set(key, value, ttl):
                stored += 1
        return stored

    async def stats(self) -> dict[str, Any]:
        """Snapshot for the status endpoint."""
        size = await self._call("size", lambda b: b.size())
        return {
            "backend": self._primary.name,
            "degraded": self._degraded,
            "size": size,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "hitRate": round(self._stats.hit_rate, 4),
            "sets": self._stats.sets,
            "errors": self._stats.errors,
            "defaultTtl": self._default_ttl,
        }

    async def close(self) -> None:
        close = getattr(self._primary, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing cache backend {self._primary.name}: {e}")
