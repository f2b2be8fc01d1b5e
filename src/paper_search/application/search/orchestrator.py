"""
SearchOrchestrator - concurrent multi-source search

Pipeline for one request:
1. Split the result budget across the selected sources
2. Per source, concurrently: rate limit check -> cache lookup -> adapter
   fetch on miss -> cache populate (non-empty results only)
3. Wait for every source to settle; sources still running at the search
   deadline are cancelled and count as empty
4. Local store results first, then external results, deduplicated
5. Semantic re-rank when a free-text query was given
6. Synthetic placeholders when external sources were queried and nothing was
   found (optional)
7. Truncate to ``max_results``

No step raises for a source failure: a failing, slow or rate-limited source
contributes an empty list.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from paper_search.core.async_utils import gather_settled, timeout_with_fallback
from paper_search.core.exceptions import RateLimitExceededError
from paper_search.infrastructure.cache.result_cache import SEARCH_RESULT_TTL, ResultCache
from paper_search.infrastructure.ratelimit.limiter import RateLimiter
from paper_search.infrastructure.sources.base import BaseSourceAdapter
from paper_search.models.article import Article, SourceQuery

from .fallback import synthetic_articles
from .filters import SearchFilters
from .local_store import LocalSearchOptions, LocalStore
from .result_merger import merge_results
from .semantic_scorer import SemanticScorer

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 60
DEFAULT_SOURCE_TIMEOUT = 15.0
DEFAULT_SEARCH_DEADLINE = 20.0


@dataclass(frozen=True)
class SearchOptions:
    """
    Options for :meth:`SearchOrchestrator.enhanced_search`.

    ``sources=None`` means every configured adapter; an empty tuple means
    none (local results only).
    """
    sources: tuple[str, ...] | None = None
    max_results: int = DEFAULT_MAX_RESULTS
    use_cache: bool = True
    categories: tuple[str, ...] = ()
    include_local: bool = True
    local_filters: SearchFilters = field(default_factory=SearchFilters)


@dataclass
class SearchReport:
    """What happened during the last search, for logs and the API meta block."""
    query: str = ""
    local_count: int = 0
    external_count: int = 0
    by_source: dict[str, int] = field(default_factory=dict)
    failed_sources: list[str] = field(default_factory=list)
    cache_hits: list[str] = field(default_factory=list)
    rate_limited: list[str] = field(default_factory=list)
    synthetic: bool = False
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "localCount": self.local_count,
            "externalCount": self.external_count,
            "bySource": dict(self.by_source),
            "failedSources": list(self.failed_sources),
            "cacheHits": list(self.cache_hits),
            "rateLimited": list(self.rate_limited),
            "synthetic": self.synthetic,
            "elapsedMs": round(self.elapsed_ms, 1),
        }


class SearchOrchestrator:
    """
    Fan a query out to the source adapters and merge what comes back.

    Example:
        orchestrator = SearchOrchestrator(
            adapters={"pubmed": pubmed, "arxiv": arxiv, "biorxiv": biorxiv},
            cache=ResultCache(),
            rate_limiter=RateLimiter(),
            scorer=SemanticScorer(),
        )
        articles = await orchestrator.enhanced_search(
            "brain imaging", SearchOptions(sources=("pubmed", "arxiv"), max_results=20)
        )
    """

    def __init__(
        self,
        adapters: Mapping[str, BaseSourceAdapter],
        cache: ResultCache,
        rate_limiter: RateLimiter,
        scorer: SemanticScorer,
        local_store: LocalStore | None = None,
        *,
        source_timeout: float = DEFAULT_SOURCE_TIMEOUT,
        search_deadline: float = DEFAULT_SEARCH_DEADLINE,
        search_cache_ttl: float = SEARCH_RESULT_TTL,
        synthetic_fallback: bool = True,
    ) -> None:
        self._adapters = dict(adapters)
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._scorer = scorer
        self._local_store = local_store
        self._source_timeout = source_timeout
        self._search_deadline = search_deadline
        self._search_cache_ttl = search_cache_ttl
        self._synthetic_fallback = synthetic_fallback

    @property
    def sources(self) -> list[str]:
        return list(self._adapters)

    @property
    def scorer(self) -> SemanticScorer:
        return self._scorer

    # =========================================================================
    # Public API
    # =========================================================================

    async def aggregated_search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[Article]:
        """All external sources, no local results, no placeholders."""
        options = SearchOptions(
            sources=tuple(self._adapters),
            max_results=max_results,
            include_local=False,
        )
        articles, _ = await self._run(query, options, allow_fallback=False)
        return articles

    async def enhanced_search(self, query: str, options: SearchOptions | None = None) -> list[Article]:
        """Search the selected sources (and the local store) with re-ranking and fallback."""
        articles, _ = await self.enhanced_search_with_report(query, options)
        return articles

    async def enhanced_search_with_report(
        self,
        query: str,
        options: SearchOptions | None = None,
    ) -> tuple[list[Article], SearchReport]:
        """:meth:`enhanced_search` plus per-source bookkeeping for the caller."""
        return await self._run(query, options or SearchOptions(), allow_fallback=self._synthetic_fallback)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run(
        self,
        query: str,
        options: SearchOptions,
        allow_fallback: bool,
    ) -> tuple[list[Article], SearchReport]:
        start = time.perf_counter()
        query = (query or "").strip()
        report = SearchReport(query=query)
        if options.max_results <= 0:
            return [], report

        sources = self._select_sources(options.sources)
        local, external = await asyncio.gather(
            self._search_local(query, options),
            self._search_external(query, options, sources, report),
        )

        merged, stats = merge_results([local, *external])
        logger.debug(f"Merge for {query!r}: {stats.to_dict()}")

        if merged and query:
            merged = self._scorer.enhance_search_results(query, merged)

        # placeholders only stand in for external sources
        if not merged and allow_fallback and sources and (query or options.categories):
            merged = synthetic_articles(query, options.categories, options.max_results)
            report.synthetic = bool(merged)
            if merged:
                logger.warning(f"No results from any source for {query!r}; returning placeholders")

        results = merged[: options.max_results]
        report.local_count = sum(1 for a in results if a.is_local)
        report.external_count = len(results) - report.local_count
        report.elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"Search {query!r}: {len(results)} results "
            f"({report.local_count} local, {report.external_count} external) "
            f"in {report.elapsed_ms:.0f}ms"
        )
        return results, report

    def _select_sources(self, requested: Sequence[str] | None) -> list[str]:
        if requested is None:
            return list(self._adapters)
        selected: list[str] = []
        for name in requested:
            key = name.strip().lower()
            if key in self._adapters and key not in selected:
                selected.append(key)
            elif key not in self._adapters and key != "local":
                logger.debug(f"Ignoring unknown source {name!r}")
        return selected

    async def _search_local(self, query: str, options: SearchOptions) -> list[Article]:
        if self._local_store is None or not options.include_local:
            return []
        filters = options.local_filters
        if options.categories and not filters.categories:
            filters = replace(filters, categories=options.categories)
        local_options = LocalSearchOptions(limit=options.max_results, filters=filters)
        try:
            if query:
                return await self._local_store.full_text_search(query, local_options)
            return await self._local_store.advanced_search(local_options)
        except Exception:
            logger.exception(f"Local search failed for {query!r}")
            return []

    async def _search_external(
        self,
        query: str,
        options: SearchOptions,
        sources: list[str],
        report: SearchReport,
    ) -> list[list[Article]]:
        if not sources:
            return []
        per_source = math.ceil(options.max_results / len(sources))
        timeout = min(self._source_timeout, self._search_deadline)

        tasks = {
            source: asyncio.create_task(
                timeout_with_fallback(
                    self._search_source(source, query, per_source, options, report),
                    timeout,
                    list,
                ),
                name=f"search:{source}",
            )
            for source in sources
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=self._search_deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

        results: list[list[Article]] = []
        for source, task in tasks.items():
            if task not in done:
                logger.warning(f"{source}: no response within {self._search_deadline:.1f}s deadline")
                report.failed_sources.append(source)
                continue
            if task.exception() is not None:
                logger.warning(f"{source}: search task failed: {task.exception()}")
                report.failed_sources.append(source)
                continue
            articles = task.result()
            report.by_source[source] = len(articles)
            results.append(articles)
        return results

    async def _search_source(
        self,
        source: str,
        query: str,
        per_source: int,
        options: SearchOptions,
        report: SearchReport,
    ) -> list[Article]:
        """One source: admission, cache, fetch, populate."""
        try:
            await self._rate_limiter.acquire(source)
        except RateLimitExceededError as e:
            retry = f", retry in {e.context.retry_after:.0f}s" if e.context.retry_after else ""
            logger.info(f"{source}: rate limited, skipping{retry}")
            report.rate_limited.append(source)
            return []

        term = query or " OR ".join(options.categories)
        cache_key = SourceQuery.build(source, term, per_source).cache_key

        if options.use_cache:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                articles = _rehydrate(source, cached)
                if articles is not None:
                    report.cache_hits.append(source)
                    return articles

        articles = await self._adapters[source].search(query, per_source, categories=options.categories)
        if articles and options.use_cache:
            await self._cache.set(
                cache_key,
                [a.to_dict() for a in articles],
                ttl=self._search_cache_ttl,
            )
        return articles

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Release adapter HTTP clients."""
        outcomes = await gather_settled(*(adapter.close() for adapter in self._adapters.values()))
        for name, outcome in zip(self._adapters, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"{name}: error while closing adapter: {outcome}")


def _rehydrate(source: str, cached: Any) -> list[Article] | None:
    """Articles from a cached payload, or None when the payload is unusable."""
    try:
        return [Article.from_dict(item) for item in cached]
    except (TypeError, KeyError, ValueError) as e:
        logger.warning(f"{source}: discarding unreadable cache entry: {e}")
        return None
