"""
Per-source admission control.

Fixed-window counters keyed ``ratelimit:{service}:{identifier}`` decide
whether an adapter may be called. Two policies are explicit settings:

- ``enabled=False``  counts every call but never denies
- ``fail_open=True`` allows the call when the backing store is unreachable
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from paper_search.core.exceptions import (
    InvalidParameterError,
    RateLimitExceededError,
    ServiceUnavailableError,
)

from .stores import MemoryRateLimitStore, RateLimitConfig, RateLimitState, RateLimitStore

logger = logging.getLogger(__name__)

DEFAULT_IDENTIFIER = "global"

DEFAULT_LIMITS: dict[str, RateLimitConfig] = {
    "pubmed": RateLimitConfig(window_ms=3_600_000, max_requests=100, block_duration_ms=1_800_000),
    "arxiv": RateLimitConfig(window_ms=3_600_000, max_requests=1000, block_duration_ms=900_000),
    "biorxiv": RateLimitConfig(window_ms=3_600_000, max_requests=100, block_duration_ms=1_800_000),
}

_CONFIG_FIELDS = {
    "window_ms": "window_ms",
    "windowMs": "window_ms",
    "max_requests": "max_requests",
    "maxRequests": "max_requests",
    "block_duration_ms": "block_duration_ms",
    "blockDurationMs": "block_duration_ms",
}


def rate_limit_key(service: str, identifier: str = DEFAULT_IDENTIFIER) -> str:
    return f"ratelimit:{service}:{identifier}"


class RateLimiter:
    """
    Fixed-window rate limiter.

    Example:
        limiter = RateLimiter()
        if await limiter.is_allowed("pubmed"):
            articles = await pubmed.search(query, 20)
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        configs: Mapping[str, RateLimitConfig] | None = None,
        *,
        enabled: bool = True,
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store or MemoryRateLimitStore()
        self._configs: dict[str, RateLimitConfig] = dict(DEFAULT_LIMITS if configs is None else configs)
        self._enabled = enabled
        self._fail_open = fail_open
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def fail_open(self) -> bool:
        return self._fail_open

    @property
    def services(self) -> list[str]:
        return list(self._configs)

    def get_config(self, service: str) -> RateLimitConfig | None:
        return self._configs.get(service)

    def update_config(self, service: str, **changes: int) -> RateLimitConfig:
        """Change ``window_ms`` / ``max_requests`` / ``block_duration_ms`` for a service."""
        updates: dict[str, int] = {}
        for name, value in changes.items():
            field_name = _CONFIG_FIELDS.get(name)
            if field_name is None:
                raise InvalidParameterError(name, value, "one of window_ms, max_requests, block_duration_ms")
            if not isinstance(value, int) or value <= 0:
                raise InvalidParameterError(name, value, "a positive integer")
            updates[field_name] = value

        current = self._configs.get(service)
        if current is None:
            missing = {"window_ms", "max_requests", "block_duration_ms"} - updates.keys()
            if missing:
                raise InvalidParameterError(
                    service, changes, f"a full config for new service (missing {', '.join(sorted(missing))})"
                )
            config = RateLimitConfig(**updates)
        else:
            config = replace(current, **updates)
        self._configs[service] = config
        logger.info(f"Rate limit config for {service} updated: {config}")
        return config

    async def is_allowed(self, service: str, identifier: str = DEFAULT_IDENTIFIER) -> bool:
        """Count one request for (service, identifier) and decide admission."""
        config = self._configs.get(service)
        if config is None:
            return True

        key = rate_limit_key(service, identifier)
        try:
            allowed, state = await self._store.hit(key, config, self._clock())
        except Exception as e:
            logger.warning(
                f"Rate limit store {self._store.name} failed for {key}: {e}; "
                f"{'allowing' if self._fail_open else 'denying'} request"
            )
            return self._fail_open

        if allowed:
            return True
        if not self._enabled:
            logger.debug(f"Rate limit exceeded for {key}; limiter disabled, allowing")
            return True
        logger.debug(f"Rate limit hit for {key} (blocked until {state.block_end_time})")
        return False

    async def acquire(self, service: str, identifier: str = DEFAULT_IDENTIFIER) -> None:
        """
        Like :meth:`is_allowed` but raises :class:`RateLimitExceededError` on denial.

        The error carries the seconds until the key unblocks as ``retry_after``.
        """
        if await self.is_allowed(service, identifier):
            return
        reset_at = await self.get_reset_time(service, identifier)
        retry_after = max(0.0, reset_at - self._clock()) if reset_at else None
        raise RateLimitExceededError(service, retry_after=retry_after)

    async def _peek(self, service: str, identifier: str) -> tuple[RateLimitConfig | None, RateLimitState | None]:
        config = self._configs.get(service)
        if config is None:
            return None, None
        try:
            state = await self._store.peek(rate_limit_key(service, identifier), config, self._clock())
        except Exception as e:
            logger.warning(f"Rate limit store {self._store.name} unavailable: {e}")
            return config, None
        return config, state

    async def get_remaining_requests(self, service: str, identifier: str = DEFAULT_IDENTIFIER) -> int:
        config, state = await self._peek(service, identifier)
        if config is None:
            return 0
        if state is None:
            return config.max_requests
        return state.remaining(config)

    async def get_reset_time(self, service: str, identifier: str = DEFAULT_IDENTIFIER) -> float:
        """Epoch seconds at which the current window resets, 0 when no window is open."""
        _, state = await self._peek(service, identifier)
        return state.reset_time if state is not None else 0.0

    async def reset_limits(self, service: str | None = None, identifier: str | None = None) -> int:
        """
        Clear counters for one key, one service, or everything.

        Raises:
            ServiceUnavailableError: the backing store could not be reached
        """
        if service is None:
            pattern = "ratelimit:*"
        elif identifier is None:
            pattern = f"ratelimit:{service}:*"
        else:
            pattern = rate_limit_key(service, identifier)
        try:
            removed = await self._store.reset(pattern)
        except Exception as e:
            logger.warning(f"Rate limit store {self._store.name} failed to reset {pattern}: {e}")
            raise ServiceUnavailableError(str(e), service=f"ratelimit:{self._store.name}") from e
        logger.info(f"Rate limits reset for {pattern} ({removed} keys)")
        return removed

    async def get_stats(self) -> dict[str, Any]:
        """Config and current global-window usage for every service."""
        services: dict[str, Any] = {}
        blocked = 0
        for service, config in self._configs.items():
            _, state = await self._peek(service, DEFAULT_IDENTIFIER)
            is_blocked = bool(state and state.blocked)
            blocked += is_blocked
            services[service] = {
                **config.to_dict(),
                "count": state.count if state else 0,
                "remaining": state.remaining(config) if state else config.max_requests,
                "resetTime": state.reset_time if state else None,
                "blocked": is_blocked,
            }

        try:
            active = len(await self._store.keys("ratelimit:*"))
        except Exception as e:
            logger.warning(f"Rate limit store {self._store.name} unavailable: {e}")
            active = 0

        return {
            "backend": self._store.name,
            "enabled": self._enabled,
            "failOpen": self._fail_open,
            "total": len(self._configs),
            "active": active,
            "blocked": blocked,
            "services": services,
        }

    async def close(self) -> None:
        close = getattr(self._store, "close", None)
        if close is not None:
            await close()
