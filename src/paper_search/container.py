"""
Application DI Container (dependency-injector).

Centralizes service creation and lifecycle management.

Usage::

    from paper_search.container import create_container

    container = create_container()          # Settings.from_env()
    orchestrator = container.orchestrator()

    # In tests, override any provider:
    container.pubmed.override(providers.Object(fake_pubmed))
"""

from __future__ import annotations

import logging

from dependency_injector import containers, providers

from paper_search.core.async_utils import gather_settled
from paper_search.core.config import Settings

logger = logging.getLogger(__name__)


def _create_cache(backend: str, redis_url: str, default_ttl: int, max_size: int) -> object:
    """Lazy factory for ResultCache; the primary backend follows configuration."""
    from paper_search.infrastructure.cache import RedisCacheBackend, ResultCache

    primary = RedisCacheBackend(redis_url) if backend == "redis" else None
    cache = ResultCache(primary, default_ttl=default_ttl, max_size=max_size)
    logger.info(f"Result cache backend: {cache.backend_name}")
    return cache


def _create_rate_limiter(backend: str, redis_url: str, enabled: bool, fail_open: bool) -> object:
    """Lazy factory for RateLimiter."""
    from paper_search.infrastructure.ratelimit import MemoryRateLimitStore, RateLimiter, RedisRateLimitStore

    store = RedisRateLimitStore(redis_url) if backend == "redis" else MemoryRateLimitStore()
    logger.info(f"Rate limit store: {store.name} (enabled={enabled}, fail_open={fail_open})")
    return RateLimiter(store, enabled=enabled, fail_open=fail_open)


def _create_pubmed(api_key: str | None, email: str | None) -> object:
    from paper_search.infrastructure.sources import PubMedAdapter

    return PubMedAdapter(api_key=api_key or None, email=email or None)


def _create_arxiv() -> object:
    from paper_search.infrastructure.sources import ArXivAdapter

    return ArXivAdapter()


def _create_biorxiv(window_days: int) -> object:
    from paper_search.infrastructure.sources import BioRxivAdapter

    return BioRxivAdapter(window_days=window_days)


def _create_scorer() -> object:
    from paper_search.application.search import SemanticScorer

    return SemanticScorer()


def _create_local_store() -> object:
    from paper_search.application.search import InMemoryLocalStore

    return InMemoryLocalStore()


def _create_orchestrator(
    adapters: dict[str, object],
    cache: object,
    rate_limiter: object,
    scorer: object,
    local_store: object,
    source_timeout: float,
    search_deadline: float,
    search_cache_ttl: int,
    synthetic_fallback: bool,
) -> object:
    """Lazy factory for SearchOrchestrator."""
    from paper_search.application.search import SearchOrchestrator

    return SearchOrchestrator(
        adapters,
        cache,
        rate_limiter,
        scorer,
        local_store,
        source_timeout=source_timeout,
        search_deadline=search_deadline,
        search_cache_ttl=search_cache_ttl,
        synthetic_fallback=synthetic_fallback,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for the paper search service.

    Manages creation and lifecycle of all core services:
    - ``cache``: result cache (memory or Redis primary)
    - ``rate_limiter``: per-source admission control
    - ``pubmed`` / ``arxiv`` / ``biorxiv``: source adapters
    - ``scorer``: semantic re-ranking
    - ``local_store``: locally stored articles
    - ``orchestrator``: the search pipeline
    """

    config = providers.Configuration()

    cache = providers.Singleton(
        _create_cache,
        backend=config.cache_backend,
        redis_url=config.redis_url,
        default_ttl=config.cache_ttl,
        max_size=config.cache_max_size,
    )

    rate_limiter = providers.Singleton(
        _create_rate_limiter,
        backend=config.rate_limit_backend,
        redis_url=config.redis_url,
        enabled=config.rate_limit_enabled,
        fail_open=config.rate_limit_fail_open,
    )

    pubmed = providers.Singleton(
        _create_pubmed,
        api_key=config.ncbi_api_key,
        email=config.ncbi_email,
    )

    arxiv = providers.Singleton(_create_arxiv)

    biorxiv = providers.Singleton(
        _create_biorxiv,
        window_days=config.biorxiv_window_days,
    )

    adapters = providers.Dict(
        pubmed=pubmed,
        arxiv=arxiv,
        biorxiv=biorxiv,
    )

    scorer = providers.Singleton(_create_scorer)

    local_store = providers.Singleton(_create_local_store)

    orchestrator = providers.Singleton(
        _create_orchestrator,
        adapters=adapters,
        cache=cache,
        rate_limiter=rate_limiter,
        scorer=scorer,
        local_store=local_store,
        source_timeout=config.source_timeout,
        search_deadline=config.search_deadline,
        search_cache_ttl=config.search_cache_ttl,
        synthetic_fallback=config.synthetic_fallback,
    )


def create_container(settings: Settings | None = None) -> ApplicationContainer:
    """Container configured from ``settings`` (environment when omitted)."""
    settings = settings or Settings.from_env()
    container = ApplicationContainer()
    container.config.from_dict(settings.as_dict())
    return container


async def shutdown_container(container: ApplicationContainer) -> None:
    """Close HTTP clients and backend connections held by the singletons."""
    outcomes = await gather_settled(
        container.orchestrator().close(),
        container.cache().close(),
        container.rate_limiter().close(),
    )
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            logger.warning(f"Error during shutdown: {outcome}")


__all__ = ["ApplicationContainer", "create_container", "shutdown_container"]
