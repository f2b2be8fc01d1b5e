"""
Async utilities shared by the source adapters, the cache and the orchestrator.

Provides:
- Settle-all parallel execution (never fail-fast)
- Circuit breaker for upstreams that keep failing
- Timeout with fallback value
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Parallel Execution
# =============================================================================

async def gather_settled(*coros: Awaitable[T]) -> list[T | Exception]:
    """
    Run coroutines concurrently and wait for every one of them to settle.

    A failing coroutine never cancels its siblings; its exception is returned
    in its slot instead. Results keep the order of ``coros``.

    Example:
        results = await gather_settled(fetch_a(), fetch_b())
        ok = [r for r in results if not isinstance(r, Exception)]
    """
    results: list[T | Exception] = [None] * len(coros)  # type: ignore[list-item]

    async def safe_run(coro: Awaitable[T], index: int) -> None:
        try:
            results[index] = await coro
        except Exception as e:
            results[index] = e

    async with asyncio.TaskGroup() as tg:
        for i, coro in enumerate(coros):
            tg.create_task(safe_run(coro, i))

    return results


# =============================================================================
# Circuit Breaker Pattern
# =============================================================================

@dataclass
class CircuitBreaker:
    """
    Circuit breaker for fault tolerance.

    States:
    - CLOSED: Normal operation
    - OPEN: Failing, reject requests immediately
    - HALF_OPEN: Testing if service recovered

    Example:
        breaker = CircuitBreaker(failure_threshold=5, name="pubmed")

        async with breaker:
            result = await risky_api_call()
    """
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 3
    name: str = "upstream"
    clock: Callable[[], float] = time.monotonic

    _failure_count: int = field(init=False, default=0)
    _last_failure_time: float | None = field(init=False, default=None)
    _state: str = field(init=False, default="closed")
    _half_open_calls: int = field(init=False, default=0)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (rejecting requests)."""
        if self._state == "open":
            if self._last_failure_time is not None:
                if self.clock() - self._last_failure_time > self.recovery_timeout:
                    return False  # Move to half-open
            return True
        return False

    async def __aenter__(self) -> CircuitBreaker:
        async with self._lock:
            if self.is_open:
                raise CircuitOpenError(self.name, retry_after=self.recovery_timeout)

            if self._state == "open":
                self._state = "half_open"
                self._half_open_calls = 0

            if self._state == "half_open":
                if self._half_open_calls >= self.half_open_max_calls:
                    raise CircuitOpenError(self.name, retry_after=self.recovery_timeout / 2)
                self._half_open_calls += 1

        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        async with self._lock:
            if isinstance(exc_val, Exception):
                self._failure_count += 1
                self._last_failure_time = self.clock()

                if self._state == "half_open" or self._failure_count >= self.failure_threshold:
                    self._state = "open"
                    logger.warning(
                        f"Circuit breaker '{self.name}' opened after "
                        f"{self._failure_count} failures"
                    )
            elif exc_val is None:
                if self._state == "half_open":
                    self._state = "closed"
                    self._failure_count = 0
                    logger.info(f"Circuit breaker '{self.name}' closed (recovered)")
                elif self._state == "closed":
                    self._failure_count = max(0, self._failure_count - 1)


# =============================================================================
# Utility Functions
# =============================================================================

async def timeout_with_fallback(
    coro: Awaitable[T],
    timeout: float,
    fallback: T | Callable[[], T],
) -> T:
    """
    Execute coroutine with timeout and fallback.

    Args:
        coro: Coroutine to execute
        timeout: Timeout in seconds
        fallback: Value or callable to return on timeout

    Returns:
        Result or fallback value
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError:
        logger.warning(f"Operation timed out after {timeout:.1f}s, using fallback")
        if callable(fallback):
            return fallback()
        return fallback
