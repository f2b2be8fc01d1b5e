"""
Rate limit state stores.

A store owns the (service, identifier) counters and applies one fixed-window
step atomically:

- :class:`MemoryRateLimitStore` - dict guarded by an ``asyncio.Lock``
- :class:`RedisRateLimitStore`  - single Lua script, atomic across processes

Block rule shared by both: the call that would exceed ``max_requests`` is
denied and the window is replaced by a block of ``block_duration_ms``; when
the block ends the counter starts from zero.
"""

from __future__ import annotations

import asyncio
import fnmatch
from dataclasses import dataclass, replace
from typing import Protocol, runtime_checkable

import redis.asyncio as aioredis


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """Per-service fixed-window parameters."""
    window_ms: int
    max_requests: int
    block_duration_ms: int

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

    @property
    def block_seconds(self) -> float:
        return self.block_duration_ms / 1000

    def to_dict(self) -> dict[str, int]:
        return {
            "windowMs": self.window_ms,
            "maxRequests": self.max_requests,
            "blockDurationMs": self.block_duration_ms,
        }


@dataclass(frozen=True, slots=True)
class RateLimitState:
    """Counter state for one key. Times are epoch seconds."""
    count: int
    window_start: float
    reset_time: float
    blocked: bool = False
    block_end_time: float | None = None

    @classmethod
    def fresh(cls, now: float, config: RateLimitConfig) -> RateLimitState:
        return cls(count=0, window_start=now, reset_time=now + config.window_seconds)

    def remaining(self, config: RateLimitConfig) -> int:
        if self.blocked:
            return 0
        return max(0, config.max_requests - self.count)


@runtime_checkable
class RateLimitStore(Protocol):
    name: str

    async def hit(self, key: str, config: RateLimitConfig, now: float) -> tuple[bool, RateLimitState]:
        """Count one request; returns (allowed, state after the step)."""
        ...

    async def peek(self, key: str, config: RateLimitConfig, now: float) -> RateLimitState | None: ...

    async def reset(self, pattern: str) -> int: ...

    async def keys(self, pattern: str = "*") -> list[str]: ...


class MemoryRateLimitStore:
    """
    Process-local store; one lock serializes every read-modify-write.

    Expired windows are dropped when their key is touched, and swept from the
    whole map every ``prune_every`` hits.
    """

    name = "memory"

    def __init__(self, prune_every: int = 256) -> None:
        self._states: dict[str, RateLimitState] = {}
        self._lock = asyncio.Lock()
        self._prune_every = max(1, prune_every)
        self._hits = 0

    def __len__(self) -> int:
        return len(self._states)

    async def hit(self, key: str, config: RateLimitConfig, now: float) -> tuple[bool, RateLimitState]:
        async with self._lock:
            self._hits += 1
            if self._hits % self._prune_every == 0:
                self._prune(now)
            state = self._current(key, now) or RateLimitState.fresh(now, config)

            if state.blocked:
                allowed = False
            elif state.count >= config.max_requests:
                block_end = now + config.block_seconds
                state = replace(
                    state,
                    blocked=True,
                    block_end_time=block_end,
                    reset_time=block_end,
                )
                allowed = False
            else:
                state = replace(state, count=state.count + 1)
                allowed = True

            self._states[key] = state
            return allowed, state

    async def peek(self, key: str, config: RateLimitConfig, now: float) -> RateLimitState | None:
        async with self._lock:
            return self._current(key, now)

    def _prune(self, now: float) -> None:
        expired = [k for k, state in self._states.items() if now >= state.reset_time]
        for key in expired:
            del self._states[key]

    def _current(self, key: str, now: float) -> RateLimitState | None:
        state = self._states.get(key)
        if state is not None and now >= state.reset_time:
            del self._states[key]
            return None
        return state

    async def reset(self, pattern: str) -> int:
        async with self._lock:
            matched = [k for k in self._states if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._states[key]
            return len(matched)

    async def keys(self, pattern: str = "*") -> list[str]:
        async with self._lock:
            return [k for k in self._states if fnmatch.fnmatchcase(k, pattern)]


# KEYS[1] counter; ARGV: window_ms, max_requests, block_ms
# Returns {allowed, count, pttl_ms, blocked}
_HIT_SCRIPT = """
local count = tonumber(redis.call('GET', KEYS[1]) or '0')
local max = tonumber(ARGV[2])
if count > max then
  return {0, count, redis.call('PTTL', KEYS[1]), 1}
end
if count >= max then
  redis.call('SET', KEYS[1], max + 1, 'PX', ARGV[3])
  return {0, max + 1, tonumber(ARGV[3]), 1}
end
count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
return {1, count, redis.call('PTTL', KEYS[1]), 0}
"""


class RedisRateLimitStore:
    """
    Shared store for multi-instance deployments.

    A key holding ``max_requests + 1`` marks a blocked client; its TTL is the
    block duration. Errors propagate so the limiter can apply its fail-open
    policy.
    """

    name = "redis"

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        client: aioredis.Redis | None = None,
        socket_timeout: float = 1.0,
    ) -> None:
        self._client = client or aioredis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )
        self._hit = self._client.register_script(_HIT_SCRIPT)

    async def hit(self, key: str, config: RateLimitConfig, now: float) -> tuple[bool, RateLimitState]:
        allowed, count, pttl, blocked = await self._hit(
            keys=[key],
            args=[config.window_ms, config.max_requests, config.block_duration_ms],
        )
        return bool(allowed), self._state(int(count), int(pttl), bool(blocked), config, now)

    async def peek(self, key: str, config: RateLimitConfig, now: float) -> RateLimitState | None:
        async with self._client.pipeline(transaction=True) as pipe:
            raw, pttl = await pipe.get(key).pttl(key).execute()
        if raw is None or int(pttl) <= 0:
            return None
        count = int(raw)
        return self._state(count, int(pttl), count > config.max_requests, config, now)

    @staticmethod
    def _state(
        count: int,
        pttl_ms: int,
        blocked: bool,
        config: RateLimitConfig,
        now: float,
    ) -> RateLimitState:
        reset_time = now + max(pttl_ms, 0) / 1000
        return RateLimitState(
            count=min(count, config.max_requests),
            window_start=reset_time - (config.block_seconds if blocked else config.window_seconds),
            reset_time=reset_time,
            blocked=blocked,
            block_end_time=reset_time if blocked else None,
        )

    async def reset(self, pattern: str) -> int:
        keys = await self.keys(pattern)
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def keys(self, pattern: str = "*") -> list[str]:
        return [key async for key in self._client.scan_iter(match=pattern)]

    async def close(self) -> None:
        await self._client.aclose()
