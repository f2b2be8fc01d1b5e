"""
Base Source Adapter - common HTTP pattern for every literature source.

Subclasses implement ``_search``; the public ``search`` wraps it so that any
network or parse failure becomes ``[]`` plus a log line. Internally requests
raise the typed errors from :mod:`paper_search.core.exceptions`:

- Retry on 429 / 5xx with Retry-After support
- Minimum interval between requests
- Circuit breaker for an upstream that keeps failing
- Per-record :class:`ParseOutcome` so one bad record never drops a batch
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from typing_extensions import Self

from paper_search.core.async_utils import CircuitBreaker
from paper_search.core.exceptions import (
    APIError,
    CircuitOpenError,
    ErrorContext,
    NetworkError,
    PaperSearchError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    get_retry_delay,
    is_retryable_error,
)
from paper_search.models.article import Article

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParseOutcome:
    """Result of normalizing one upstream record: an article or an error."""
    article: Article | None = None
    error: str | None = None
    record: str | None = None

    @property
    def ok(self) -> bool:
        return self.article is not None

    @classmethod
    def success(cls, article: Article) -> ParseOutcome:
        return cls(article=article, record=article.id)

    @classmethod
    def failure(cls, error: str, record: str | None = None) -> ParseOutcome:
        return cls(error=error, record=record)


class BaseSourceAdapter(ABC):
    """
    Base class for literature source adapters.

    Provides common infrastructure:
    - httpx.AsyncClient management (transport injectable for tests)
    - Rate limiting with configurable interval
    - Retry on 429 / 5xx with backoff
    - Circuit breaker for fault tolerance
    - Never-raising ``search`` contract

    Example:
        class MySource(BaseSourceAdapter):
            name = "mysource"

            async def _search(self, query, max_results, categories):
                payload = await self._request("https://api.example.com/q", params={"q": query})
                return self.collect(self._parse(payload))
    """

    name: str = "source"
    _MAX_RETRIES: int = 2

    def __init__(
        self,
        *,
        base_url: str = "",
        timeout: float = 15.0,
        min_interval: float = 0.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        max_retries: int | None = None,
        max_backoff: float = 4.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._min_interval = min_interval
        self._last_request_time = 0.0
        self._max_retries = self._MAX_RETRIES if max_retries is None else max_retries
        self._max_backoff = max_backoff
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers or {},
            transport=transport,
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=20,
                max_keepalive_connections=10,
                keepalive_expiry=30.0,
            ),
        )
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60.0,
            name=self.name,
        )

    # -------------------------------------------------------------------------
    # Public contract
    # -------------------------------------------------------------------------

    async def search(
        self,
        query: str,
        max_results: int,
        *,
        categories: Sequence[str] = (),
    ) -> list[Article]:
        """
        Search the source and return normalized articles.

        Never raises for upstream problems: failures are logged and an empty
        list is returned. Cancellation still propagates.
        """
        query = (query or "").strip()
        if max_results <= 0 or (not query and not categories):
            return []
        try:
            articles = await self._search(query, max_results, tuple(categories))
        except PaperSearchError as e:
            logger.warning(f"{self.name}: search failed for {query!r}: {e}")
            return []
        except Exception:
            logger.exception(f"{self.name}: unexpected error while searching {query!r}")
            return []
        return articles[:max_results]

    @abstractmethod
    async def _search(
        self,
        query: str,
        max_results: int,
        categories: tuple[str, ...],
    ) -> list[Article]:
        """Fetch and normalize; may raise PaperSearchError subclasses."""

    def collect(self, outcomes: Iterable[ParseOutcome]) -> list[Article]:
        """Keep parsed articles, log and drop records that failed."""
        articles: list[Article] = []
        for outcome in outcomes:
            if outcome.article is not None:
                articles.append(outcome.article)
            else:
                logger.warning(
                    f"{self.name}: skipping malformed record {outcome.record or '?'}: {outcome.error}"
                )
        return articles

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    async def _rate_limit(self) -> None:
        """Enforce minimum interval between requests."""
        if self._min_interval <= 0:
            return
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self._min_interval:
            await asyncio.sleep(self._min_interval - elapsed)
        self._last_request_time = time.monotonic()

    def _build_url(self, url: str) -> str:
        """Build full URL from path or full URL."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self._base_url}{url}"

    async def _request(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        expect_json: bool = True,
    ) -> Any:
        """
        GET ``url`` with retry and circuit breaker protection.

        Returns:
            Parsed JSON, or the response text when ``expect_json`` is False

        Raises:
            RateLimitError: upstream kept answering 429
            ServiceUnavailableError: upstream 5xx
            CircuitOpenError: upstream skipped while its breaker is open
            NetworkError: timeout or connection failure
            APIError: any other non-success status
            ParseError: body is not valid JSON
        """
        full_url = self._build_url(url)
        context = ErrorContext(source=self.name, operation="request", input_value=full_url)

        for attempt in range(self._max_retries + 1):
            await self._rate_limit()
            try:
                async with self._circuit_breaker:
                    response = await self._execute_request(full_url, params=params, timeout=timeout)
                    self._raise_for_status(response, context)
            except PaperSearchError as e:
                if isinstance(e, CircuitOpenError) or not is_retryable_error(e) or attempt >= self._max_retries:
                    raise
                delay = get_retry_delay(e, attempt, cap=self._max_backoff)
                logger.warning(
                    f"{self.name}: {e} - retry {attempt + 1}/{self._max_retries} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue
            return self._parse_response(response, expect_json)

        raise NetworkError(f"{self.name}: retries exhausted", context=context)

    async def _execute_request(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Execute the actual HTTP request, mapping transport errors."""
        try:
            return await self._client.get(
                url,
                params=params,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"{self.name}: request timed out",
                context=ErrorContext(source=self.name, input_value=url),
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(
                f"{self.name}: {e.__class__.__name__}: {e}",
                context=ErrorContext(source=self.name, input_value=url),
            ) from e

    def _raise_for_status(self, response: httpx.Response, context: ErrorContext) -> None:
        status = response.status_code
        if status == 429:
            raise RateLimitError(
                f"{self.name}: rate limited (429)",
                retry_after=self._get_retry_after(response),
                context=context,
            )
        if status >= 500:
            raise ServiceUnavailableError(
                f"HTTP {status} {response.reason_phrase}",
                service=self.name,
                context=context,
            )
        if status >= 400:
            raise APIError(
                f"{self.name}: HTTP {status} {response.reason_phrase}",
                context=context,
                retryable=False,
            )

    def _parse_response(self, response: httpx.Response, expect_json: bool) -> Any:
        """Parse response body. Override for custom extraction logic."""
        if not expect_json:
            return response.text
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"invalid JSON body: {e}", source=self.name) from e

    @staticmethod
    def _get_retry_after(response: httpx.Response) -> float:
        """Retry-After header in seconds, 1.0 when absent or unparseable."""
        try:
            return max(float(response.headers.get("Retry-After", 1.0)), 0.0)
        except (ValueError, TypeError):
            return 1.0

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
