"""
HTTP API Server for paper search.

Endpoints:
    GET  /api/search              query-string search
    POST /api/search              JSON body search with filters, sort, pagination
    GET  /api/search/suggestions  query completion from the semantic tables
    GET  /api/system/status       uptime, cache and rate limiter statistics
    POST /api/system/status       maintenance actions (resetRateLimit, flushCache)
    GET  /health                  liveness probe
"""

from __future__ import annotations

import logging
import platform
import sys
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Any, Literal

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from redis.exceptions import RedisError

from paper_search import __version__
from paper_search.application.search import (
    SearchFilters,
    SearchOptions,
    SortField,
    SortOrder,
    apply_filters,
    paginate,
    sort_articles,
)
from paper_search.container import ApplicationContainer, create_container, shutdown_container
from paper_search.core.config import LOG_LEVELS, Settings
from paper_search.core.exceptions import InvalidQueryError, PaperSearchError, ValidationError
from paper_search.models.article import ArticleStatus

logger = logging.getLogger(__name__)

DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8765
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_QUERY_LENGTH = 500

SYSTEM_ACTIONS = ("resetRateLimit", "flushCache")


# =============================================================================
# Request / response models
# =============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DateRange(_CamelModel):
    start: date | None = None
    end: date | None = None


class NumberRange(_CamelModel):
    min: float | None = None
    max: float | None = None


class SearchFiltersBody(_CamelModel):
    """Filters accepted by ``POST /api/search``."""
    categories: list[str] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    date_range: DateRange | None = Field(default=None, alias="dateRange")
    citation_range: NumberRange | None = Field(default=None, alias="citationRange")
    impact_range: NumberRange | None = Field(default=None, alias="impactRange")
    status: list[ArticleStatus] = Field(
        default_factory=lambda: [ArticleStatus.PUBLISHED, ArticleStatus.PREPRINT]
    )


class PaginationBody(_CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


class SortBody(_CamelModel):
    by: SortField = SortField.RELEVANCE
    order: SortOrder = SortOrder.DESC


class SearchRequest(_CamelModel):
    """Body of ``POST /api/search``."""
    query: str = ""
    filters: SearchFiltersBody = Field(default_factory=SearchFiltersBody)
    pagination: PaginationBody = Field(default_factory=PaginationBody)
    sort: SortBody = Field(default_factory=SortBody)


class SystemActionRequest(_CamelModel):
    """Body of ``POST /api/system/status``."""
    action: str
    service: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    uptime: float


# =============================================================================
# Helpers
# =============================================================================

def _split(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _int_or_none(value: float | None) -> int | None:
    return int(value) if value is not None else None


def _search_error() -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": "Search failed"})


def _validation_error(error: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, **error.to_dict()})


def _maintenance_error(action: str, error: Exception) -> JSONResponse:
    logger.warning(f"System action {action} failed: {error}")
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": f"{action} failed: backing store unavailable"},
    )


def _container(request: Request) -> ApplicationContainer:
    return request.app.state.container


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _plan_sources(
    search_type: str,
    sources: list[str],
) -> tuple[tuple[str, ...] | None, bool]:
    """(external sources for the orchestrator, include local results)."""
    wanted = [s.lower() for s in sources]
    include_local = search_type != "external" and (not wanted or "local" in wanted)
    if search_type == "local":
        return (), include_local
    external = tuple(s for s in wanted if s != "local") if wanted else None
    return external, include_local


async def _run_search(
    request: Request,
    query: str,
    *,
    search_type: str,
    categories: list[str],
    sources: list[str],
    filters: SearchFilters,
    sort_by: SortField,
    order: SortOrder,
    page: int,
    limit: int,
) -> dict[str, Any]:
    """Search, then filter, sort and paginate into the response envelope."""
    if len(query) > MAX_QUERY_LENGTH:
        raise InvalidQueryError(query[:50], f"longer than {MAX_QUERY_LENGTH} characters")

    orchestrator = _container(request).orchestrator()
    external, include_local = _plan_sources(search_type, sources)
    options = SearchOptions(
        sources=external,
        max_results=max(_settings(request).max_results, page * limit),
        categories=tuple(c for c in categories if c.lower() != "all"),
        include_local=include_local,
        local_filters=filters,
    )
    articles, report = await orchestrator.enhanced_search_with_report(query, options)

    # sources were applied when selecting adapters
    filtered = apply_filters(articles, replace(filters, sources=()))
    ordered = sort_articles(filtered, sort_by, order)
    result_page = paginate(ordered, page, limit)
    local_count = sum(1 for a in filtered if a.is_local)

    return {
        "success": True,
        "data": [a.to_dict() for a in result_page.items],
        "pagination": {
            "page": result_page.page,
            "limit": result_page.limit,
            "total": result_page.total,
            "hasMore": result_page.has_more,
        },
        "meta": {
            "query": query,
            "localCount": local_count,
            "externalCount": len(filtered) - local_count,
            "totalCount": len(filtered),
            "synthetic": report.synthetic,
            "sources": report.by_source,
            "failedSources": report.failed_sources,
            "rateLimited": report.rate_limited,
        },
    }


def _memory_usage() -> dict[str, Any]:
    """Peak resident set size of this process, where the platform reports it."""
    if sys.platform == "win32":
        return {"maxRss": None}
    import resource

    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    if sys.platform != "darwin":
        max_rss *= 1024
    return {"maxRss": max_rss}


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
    )


@router.get("/api/search")
async def search_get(
    request: Request,
    q: str = Query(default="", description="Free-text query"),
    search_type: Literal["local", "external", "all"] = Query(default="all", alias="type"),
    categories: str | None = Query(default=None, description="Comma-separated categories"),
    sources: str | None = Query(default=None, description="Comma-separated sources (local, pubmed, arxiv, biorxiv)"),
    sort_by: SortField = Query(default=SortField.RELEVANCE, alias="sortBy"),
    sort_order: SortOrder = Query(default=SortOrder.DESC, alias="sortOrder"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    page: int = Query(default=1, ge=1),
    date_from: date | None = Query(default=None, alias="dateFrom"),
    date_to: date | None = Query(default=None, alias="dateTo"),
    min_citations: int | None = Query(default=None, ge=0, alias="minCitations"),
    max_citations: int | None = Query(default=None, ge=0, alias="maxCitations"),
    min_impact: float | None = Query(default=None, alias="minImpact"),
    max_impact: float | None = Query(default=None, alias="maxImpact"),
):
    """Search with query-string parameters."""
    category_list = _split(categories)
    source_list = _split(sources)
    filters = SearchFilters(
        categories=tuple(category_list),
        sources=tuple(source_list),
        date_from=date_from,
        date_to=date_to,
        min_citations=min_citations,
        max_citations=max_citations,
        min_impact=min_impact,
        max_impact=max_impact,
    )
    try:
        return await _run_search(
            request,
            q.strip(),
            search_type=search_type,
            categories=category_list,
            sources=source_list,
            filters=filters,
            sort_by=sort_by,
            order=sort_order,
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        return _validation_error(e)
    except Exception:
        logger.exception(f"Search failed for {q!r}")
        return _search_error()


@router.post("/api/search")
async def search_post(request: Request, body: SearchRequest):
    """Search with a JSON body."""
    f = body.filters
    filters = SearchFilters(
        categories=tuple(f.categories),
        authors=tuple(f.authors),
        sources=tuple(f.sources),
        statuses=tuple(f.status),
        date_from=f.date_range.start if f.date_range else None,
        date_to=f.date_range.end if f.date_range else None,
        min_citations=_int_or_none(f.citation_range.min) if f.citation_range else None,
        max_citations=_int_or_none(f.citation_range.max) if f.citation_range else None,
        min_impact=f.impact_range.min if f.impact_range else None,
        max_impact=f.impact_range.max if f.impact_range else None,
    )
    try:
        return await _run_search(
            request,
            body.query.strip(),
            search_type="all",
            categories=list(f.categories),
            sources=list(f.sources),
            filters=filters,
            sort_by=body.sort.by,
            order=body.sort.order,
            page=body.pagination.page,
            limit=body.pagination.limit,
        )
    except ValidationError as e:
        return _validation_error(e)
    except Exception:
        logger.exception(f"Search failed for {body.query!r}")
        return _search_error()


@router.get("/api/search/suggestions")
async def search_suggestions(request: Request, q: str = Query(default="")):
    """Completion candidates for a partial query."""
    scorer = _container(request).scorer()
    return {"success": True, "data": scorer.generate_search_suggestions(q)}


@router.get("/api/system/status")
async def system_status(request: Request):
    """Process, cache and rate limiter statistics."""
    container = _container(request)
    return {
        "success": True,
        "data": {
            "system": {
                "timestamp": datetime.now(UTC).isoformat(),
                "uptime": round(time.monotonic() - request.app.state.started_at, 3),
                "memory": _memory_usage(),
                "version": __version__,
                "platform": platform.platform(),
                "python": platform.python_version(),
            },
            "cache": await container.cache().stats(),
            "rateLimits": await container.rate_limiter().get_stats(),
        },
    }


@router.post("/api/system/status")
async def system_action(request: Request, body: SystemActionRequest):
    """Maintenance actions: ``resetRateLimit`` (needs ``service``) and ``flushCache``."""
    if body.action not in SYSTEM_ACTIONS:
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid action"})

    container = _container(request)
    if body.action == "resetRateLimit":
        if not body.service:
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "Service name required"},
            )
        try:
            removed = await container.rate_limiter().reset_limits(body.service)
        except (PaperSearchError, RedisError, OSError) as e:
            return _maintenance_error(body.action, e)
        return {
            "success": True,
            "message": f"Rate limits reset for {body.service}",
            "data": {"service": body.service, "removed": removed},
        }

    try:
        removed = await container.cache().flush()
    except (PaperSearchError, RedisError, OSError) as e:
        return _maintenance_error(body.action, e)
    return {"success": True, "message": "Cache flushed", "data": {"removed": removed}}


# =============================================================================
# Application factory
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    logger.info(
        f"Paper search API starting (cache={settings.cache_backend}, "
        f"rate_limit={settings.rate_limit_backend})"
    )
    yield
    logger.info("Paper search API shutting down")
    await shutdown_container(app.state.container)


def create_api_server(
    container: ApplicationContainer | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        container: Pre-built container (tests override providers on it).
        settings: Settings used to build a container when none is given;
            defaults to the environment.

    Returns:
        Configured FastAPI instance.
    """
    settings = settings or Settings.from_env()
    container = container or create_container(settings)

    app = FastAPI(
        title="Paper Search API",
        description="Aggregated research paper search over PubMed, arXiv, bioRxiv and local articles.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


def run_api_server(
    host: str = DEFAULT_API_HOST,
    port: int = DEFAULT_API_PORT,
    settings: Settings | None = None,
) -> None:
    """
    Run the HTTP API server.

    Args:
        host: Host to bind to (default: 127.0.0.1 for local only)
        port: Port to bind to (default: 8765)
        settings: Runtime settings (default: from environment)
    """
    import uvicorn

    settings = settings or Settings.from_env()
    app = create_api_server(settings=settings)
    logger.info(f"Starting HTTP API server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def main(argv: list[str] | None = None) -> None:
    """``paper-search-api`` entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Paper Search HTTP API Server")
    parser.add_argument("--host", default=DEFAULT_API_HOST, help="Host to bind to")
    parser.add_argument("--port", type=int, default=DEFAULT_API_PORT, help="Port to bind to")
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper, help="Logging level")

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    level = args.log_level or settings.log_level
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if args.log_level:
        settings = Settings(**{**settings.as_dict(), "log_level": level})

    run_api_server(host=args.host, port=args.port, settings=settings)


if __name__ == "__main__":
    main()
