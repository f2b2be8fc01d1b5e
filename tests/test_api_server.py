"""
Tests for the HTTP API (FastAPI TestClient, container providers overridden).
"""

from __future__ import annotations

from datetime import date

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient
from redis.exceptions import RedisError

from paper_search.api.server import MAX_QUERY_LENGTH, create_api_server
from paper_search.application.search import InMemoryLocalStore
from paper_search.container import create_container
from paper_search.core.config import Settings
from paper_search.infrastructure.ratelimit import RateLimiter
from paper_search.models.article import ArticleSource, ArticleStatus, SourceType


class StaticAdapter:
    """Returns the same articles for any query."""

    def __init__(self, name, articles=()):
        self.name = name
        self.articles = list(articles)
        self.calls: list[str] = []
        self.closed = False

    async def search(self, query, max_results, *, categories=()):
        self.calls.append(query)
        return self.articles[:max_results]

    async def close(self):
        self.closed = True


@pytest.fixture
def adapters(make_article):
    return {
        "pubmed": StaticAdapter("pubmed", [
            make_article(id="pubmed_1", title="CRISPR screens in neurons", citation_count=40,
                         publication_date=date(2022, 4, 1)),
            make_article(id="pubmed_2", title="CRISPR delivery vectors", citation_count=12,
                         publication_date=date(2024, 3, 1)),
        ]),
        "arxiv": StaticAdapter("arxiv", [
            make_article(
                id="arxiv_1",
                title="CRISPR guide design with transformers",
                status=ArticleStatus.PREPRINT,
                source=ArticleSource("arXiv", "https://arxiv.org/abs/1", SourceType.PREPRINT),
                publication_date=date(2024, 5, 1),
            ),
        ]),
        "biorxiv": StaticAdapter("biorxiv"),
    }


@pytest.fixture
def container(adapters, make_article):
    container = create_container(Settings(max_results=20))
    for name, adapter in adapters.items():
        getattr(container, name).override(providers.Object(adapter))
    container.local_store.override(providers.Object(InMemoryLocalStore([
        make_article(id="local_1", title="CRISPR local notes", publication_date=date(2023, 1, 1)),
    ])))
    return container


@pytest.fixture
def client(container):
    return TestClient(create_api_server(container, settings=Settings(max_results=20)))


# ============================================================
# Health
# ============================================================


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == "0.1.0"
        assert body["uptime"] >= 0

    def test_lifespan_closes_adapters(self, container, adapters):
        app = create_api_server(container, settings=Settings())

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200

        assert all(adapter.closed for adapter in adapters.values())


# ============================================================
# GET /api/search
# ============================================================


class TestSearchGet:
    def test_envelope(self, client):
        response = client.get("/api/search", params={"q": "CRISPR"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]) == 4
        assert body["data"][0]["id"] == "local_1"
        assert body["data"][0]["isLocal"] is True
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 4, "hasMore": False}
        meta = body["meta"]
        assert meta["query"] == "CRISPR"
        assert meta["localCount"] == 1
        assert meta["externalCount"] == 3
        assert meta["totalCount"] == 4
        assert meta["synthetic"] is False
        assert meta["sources"] == {"pubmed": 2, "arxiv": 1, "biorxiv": 0}

    def test_local_only(self, client, adapters):
        body = client.get("/api/search", params={"q": "CRISPR", "type": "local"}).json()

        assert [a["id"] for a in body["data"]] == ["local_1"]
        assert all(not adapter.calls for adapter in adapters.values())

    def test_local_only_without_matches_has_no_placeholders(self, container, adapters):
        container.local_store.override(providers.Object(InMemoryLocalStore()))
        client = TestClient(create_api_server(container, settings=Settings()))

        body = client.get("/api/search", params={"q": "photonics", "type": "local"}).json()

        assert body["success"] is True
        assert body["data"] == []
        assert body["meta"]["synthetic"] is False
        assert all(not adapter.calls for adapter in adapters.values())

    def test_external_only(self, client):
        body = client.get("/api/search", params={"q": "CRISPR", "type": "external"}).json()

        assert body["meta"]["localCount"] == 0
        assert body["meta"]["totalCount"] == 3

    def test_source_selection(self, client, adapters):
        body = client.get("/api/search", params={"q": "CRISPR", "sources": "arxiv"}).json()

        assert [a["id"] for a in body["data"]] == ["arxiv_1"]
        assert adapters["pubmed"].calls == []

    def test_pagination(self, client):
        body = client.get("/api/search", params={"q": "CRISPR", "limit": 3, "page": 2}).json()

        assert len(body["data"]) == 1
        assert body["pagination"] == {"page": 2, "limit": 3, "total": 4, "hasMore": False}

    def test_sort_by_citations(self, client):
        body = client.get("/api/search", params={"q": "CRISPR", "sortBy": "citations"}).json()

        assert [a["id"] for a in body["data"]][:2] == ["pubmed_1", "pubmed_2"]

    def test_sort_by_date_ascending(self, client):
        body = client.get("/api/search", params={"q": "CRISPR", "sortBy": "date", "sortOrder": "asc"}).json()

        assert [a["id"] for a in body["data"]] == ["pubmed_1", "local_1", "pubmed_2", "arxiv_1"]

    def test_date_filter(self, client):
        body = client.get("/api/search", params={"q": "CRISPR", "dateFrom": "2024-01-01"}).json()

        assert {a["id"] for a in body["data"]} == {"pubmed_2", "arxiv_1"}

    def test_limit_out_of_range(self, client):
        assert client.get("/api/search", params={"q": "CRISPR", "limit": 500}).status_code == 422

    def test_query_too_long(self, client):
        response = client.get("/api/search", params={"q": "x" * (MAX_QUERY_LENGTH + 1)})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["category"] == "validation"

    def test_synthetic_when_nothing_found(self, client):
        body = client.get("/api/search", params={"q": "photonics", "sources": "biorxiv"}).json()

        assert body["meta"]["synthetic"] is True
        assert len(body["data"]) == 3
        assert all(a["isSynthetic"] for a in body["data"])

    def test_internal_error(self, container, make_article):
        class BrokenOrchestrator:
            async def enhanced_search_with_report(self, query, options):
                raise RuntimeError("boom")

        container.orchestrator.override(providers.Object(BrokenOrchestrator()))
        client = TestClient(create_api_server(container, settings=Settings()))

        response = client.get("/api/search", params={"q": "CRISPR"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Search failed"}


# ============================================================
# POST /api/search
# ============================================================


class TestSearchPost:
    def test_status_filter(self, client):
        response = client.post("/api/search", json={"query": "CRISPR", "filters": {"status": ["preprint"]}})

        assert response.status_code == 200
        assert [a["id"] for a in response.json()["data"]] == ["arxiv_1"]

    def test_date_range_and_sort(self, client):
        body = client.post("/api/search", json={
            "query": "CRISPR",
            "filters": {"dateRange": {"start": "2023-01-01", "end": "2024-04-01"}},
            "sort": {"by": "date", "order": "desc"},
        }).json()

        assert [a["id"] for a in body["data"]] == ["pubmed_2", "local_1"]

    def test_citation_range(self, client):
        body = client.post("/api/search", json={
            "query": "CRISPR",
            "filters": {"citationRange": {"min": 10, "max": 20}},
        }).json()

        assert [a["id"] for a in body["data"]] == ["pubmed_2"]

    def test_pagination_body(self, client):
        body = client.post("/api/search", json={"query": "CRISPR", "pagination": {"page": 1, "limit": 2}}).json()

        assert len(body["data"]) == 2
        assert body["pagination"]["hasMore"] is True

    def test_invalid_body(self, client):
        response = client.post("/api/search", json={"query": "CRISPR", "pagination": {"limit": 0}})

        assert response.status_code == 422


# ============================================================
# Suggestions and system status
# ============================================================


class TestSuggestions:
    def test_suggestions(self, client):
        body = client.get("/api/search/suggestions", params={"q": "can"}).json()

        assert body == {"success": True, "data": ["cancer", "ct scan", "pet scan"]}


class TestSystemStatus:
    def test_status(self, client):
        client.get("/api/search", params={"q": "CRISPR"})

        body = client.get("/api/system/status").json()

        assert body["success"] is True
        data = body["data"]
        assert data["system"]["version"] == "0.1.0"
        assert "maxRss" in data["system"]["memory"]
        assert data["cache"]["backend"] == "memory"
        assert data["cache"]["size"] == 2
        assert data["rateLimits"]["backend"] == "memory"
        assert data["rateLimits"]["services"]["pubmed"]["count"] == 1

    def test_invalid_action(self, client):
        response = client.post("/api/system/status", json={"action": "reboot"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid action"

    def test_reset_rate_limit_requires_service(self, client):
        response = client.post("/api/system/status", json={"action": "resetRateLimit"})

        assert response.status_code == 400
        assert response.json()["error"] == "Service name required"

    def test_reset_rate_limit(self, client):
        client.get("/api/search", params={"q": "CRISPR"})

        body = client.post("/api/system/status", json={"action": "resetRateLimit", "service": "pubmed"}).json()

        assert body["success"] is True
        assert body["data"] == {"service": "pubmed", "removed": 1}

    def test_flush_cache(self, client):
        client.get("/api/search", params={"q": "CRISPR"})

        body = client.post("/api/system/status", json={"action": "flushCache"}).json()

        assert body == {"success": True, "message": "Cache flushed", "data": {"removed": 2}}

    def test_reset_rate_limit_store_unavailable(self, container):
        class DownStore:
            name = "redis"

            async def reset(self, pattern):
                raise ConnectionError("connection refused")

        container.rate_limiter.override(providers.Object(RateLimiter(DownStore())))
        client = TestClient(create_api_server(container, settings=Settings()))

        response = client.post("/api/system/status", json={"action": "resetRateLimit", "service": "pubmed"})

        assert response.status_code == 503
        assert response.json() == {
            "success": False,
            "error": "resetRateLimit failed: backing store unavailable",
        }

    def test_flush_cache_store_unavailable(self, container):
        class DownCache:
            async def flush(self):
                raise RedisError("connection refused")

        container.cache.override(providers.Object(DownCache()))
        client = TestClient(create_api_server(container, settings=Settings()))

        response = client.post("/api/system/status", json={"action": "flushCache"})

        assert response.status_code == 503
        assert response.json()["success"] is False
