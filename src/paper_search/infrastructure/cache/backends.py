"""
Cache backends.

Two implementations of the same async key/value contract:

- :class:`MemoryCacheBackend` - in-process ``cachetools.TLRUCache`` with a
  TTL per entry and LRU eviction at ``max_size``
- :class:`RedisCacheBackend` - shared store for multi-instance deployments;
  values are JSON, connection problems surface as ``CacheUnavailableError``

Values must be JSON-compatible so both backends behave identically.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

import redis.asyncio as aioredis
from cachetools import TLRUCache
from redis.exceptions import RedisError

from paper_search.core.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A stored value with its insertion time and lifetime."""
    key: str
    value: Any
    inserted_at: float
    ttl_seconds: float

    def expires_at(self) -> float:
        return self.inserted_at + self.ttl_seconds


@runtime_checkable
class CacheBackend(Protocol):
    """Async key/value store with per-entry TTL."""

    name: str

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: float) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def has(self, key: str) -> bool: ...

    async def flush(self) -> int: ...

    async def keys(self, pattern: str = "*") -> list[str]: ...

    async def size(self) -> int: ...


class MemoryCacheBackend:
    """
    In-process cache.

    Uses cachetools.TLRUCache so every entry carries its own TTL; expired
    entries are invisible to reads and are purged lazily.

    Example:
        backend = MemoryCacheBackend(max_size=1000)
        await backend.set("search:pubmed:abc", [...], ttl=86400)
        value = await backend.get("search:pubmed:abc")
    """

    name = "memory"

    def __init__(
        self,
        max_size: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timer = timer
        self._cache: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=max_size,
            ttu=self._time_to_use,
            timer=timer,
        )

    @staticmethod
    def _time_to_use(_key: str, entry: CacheEntry, now: float) -> float:
        return now + entry.ttl_seconds

    async def get(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._cache[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=self._timer(),
            ttl_seconds=ttl,
        )

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def has(self, key: str) -> bool:
        return key in self._cache

    async def flush(self) -> int:
        count = len(self._cache)
        self._cache.clear()
        return count

    async def keys(self, pattern: str = "*") -> list[str]:
        self._cache.expire()
        return [k for k in list(self._cache.keys()) if fnmatch.fnmatchcase(k, pattern)]

    async def size(self) -> int:
        self._cache.expire()
        return len(self._cache)


class RedisCacheBackend:
    """
    Redis-backed cache shared between processes.

    Keys are namespaced with ``prefix`` so ``flush`` only removes this
    application's entries. Every Redis or socket error is re-raised as
    :class:`CacheUnavailableError` for the facade to degrade on.
    """

    name = "redis"

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        client: aioredis.Redis | None = None,
        prefix: str = "paper_search:",
        socket_timeout: float = 1.0,
    ) -> None:
        self._prefix = prefix
        self._client = client or aioredis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _run(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"{operation} failed: {e}", backend=self.name) from e

    async def get(self, key: str) -> Any | None:
        raw = await self._run("GET", self._client.get(self._key(key)))
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl: float) -> None:
        payload = json.dumps(value)
        await self._run("SET", self._client.set(self._key(key), payload, ex=max(1, int(ttl))))

    async def delete(self, key: str) -> bool:
        return bool(await self._run("DEL", self._client.delete(self._key(key))))

    async def has(self, key: str) -> bool:
        return bool(await self._run("EXISTS", self._client.exists(self._key(key))))

    async def flush(self) -> int:
        keys = [self._key(k) for k in await self.keys()]
        if not keys:
            return 0
        return int(await self._run("DEL", self._client.delete(*keys)))

    async def keys(self, pattern: str = "*") -> list[str]:
        async def scan() -> list[str]:
            found = []
            async for raw in self._client.scan_iter(match=self._key(pattern)):
                found.append(raw[len(self._prefix):])
            return found

        return await self._run("SCAN", scan())

    async def size(self) -> int:
        return len(await self.keys())

    async def close(self) -> None:
        await self._client.aclose()
