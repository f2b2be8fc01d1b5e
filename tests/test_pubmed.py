"""
Tests for the PubMed E-utilities adapter.
"""

from __future__ import annotations

from datetime import date

import httpx
import pytest
from defusedxml import ElementTree as ET

from paper_search.core.async_utils import CircuitBreaker
from paper_search.core.exceptions import ParseError
from paper_search.infrastructure.sources.pubmed import (
    PubMedAdapter,
    parse_pub_date,
    parse_pubmed_xml,
)
from paper_search.models.article import ArticleStatus, SourceType


@pytest.fixture
def eutils_handler(esearch_payload, efetch_xml):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/esearch.fcgi"):
            return httpx.Response(200, json=esearch_payload)
        if request.url.path.endswith("/efetch.fcgi"):
            return httpx.Response(200, text=efetch_xml)
        return httpx.Response(404)

    return handler


def _adapter(transport, **kwargs) -> PubMedAdapter:
    kwargs.setdefault("min_interval", 0.0)
    kwargs.setdefault("max_retries", 0)
    return PubMedAdapter(transport=transport, **kwargs)


# ============================================================
# Two-phase search
# ============================================================


class TestPubMedSearch:
    """esearch -> efetch flow."""

    async def test_returns_parsed_articles(self, transport_factory, eutils_handler):
        transport = transport_factory(eutils_handler)
        adapter = _adapter(transport)

        articles = await adapter.search("CRISPR", 10)

        assert [a.id for a in articles] == ["pubmed_38000001", "pubmed_38000002"]
        first = articles[0]
        assert first.title == "CRISPR gene editing in human stem cells"
        assert first.abstract == "Gene editing with CRISPR enables precise changes. Stem cell therapy outcomes improved."
        assert first.author_names == ["John Smith", "Jane Doe"]
        assert first.authors[0].affiliation == "Broad Institute"
        assert first.source.name == "Nature Biotechnology"
        assert first.source.url == "https://pubmed.ncbi.nlm.nih.gov/38000001/"
        assert first.source.type == SourceType.JOURNAL
        assert first.doi == "10.1038/nbt.2024.001"
        assert first.external_id == "38000001"
        assert first.publication_date == date(2024, 3, 5)
        assert first.status == ArticleStatus.PUBLISHED
        assert first.keywords == ("Gene Editing", "Stem Cells", "CRISPR")
        assert "genetics" in first.categories
        assert "crispr" in first.tags
        assert not first.is_local
        await adapter.close()

    async def test_sparse_record_gets_defaults(self, transport_factory, eutils_handler):
        adapter = _adapter(transport_factory(eutils_handler))

        articles = await adapter.search("brain imaging", 10)
        second = articles[1]

        assert second.source.name == "Unknown Journal"
        assert second.publication_date == date(2019, 1, 1)
        assert second.author_names == ["Brain Imaging Consortium"]
        assert second.categories == ("neuroscience",)
        assert second.tags == ("healthcare",)
        assert second.doi is None
        await adapter.close()

    async def test_request_parameters(self, transport_factory, eutils_handler):
        transport = transport_factory(eutils_handler)
        adapter = _adapter(transport, api_key="secret", email="dev@example.org")

        await adapter.search("  CRISPR  ", 7)

        esearch, efetch = transport.requests
        assert esearch.url.params["term"] == "CRISPR"
        assert esearch.url.params["retmax"] == "7"
        assert esearch.url.params["retmode"] == "json"
        assert esearch.url.params["api_key"] == "secret"
        assert esearch.url.params["email"] == "dev@example.org"
        assert efetch.url.params["id"] == "38000001,38000002,38000003"
        assert efetch.url.params["retmode"] == "xml"
        await adapter.close()

    async def test_truncates_to_max_results(self, transport_factory, eutils_handler):
        adapter = _adapter(transport_factory(eutils_handler))

        articles = await adapter.search("CRISPR", 1)

        assert len(articles) == 1
        await adapter.close()

    async def test_categories_used_when_query_empty(self, transport_factory, eutils_handler):
        transport = transport_factory(eutils_handler)
        adapter = _adapter(transport)

        await adapter.search("", 5, categories=("genetics", "neuroscience"))

        assert transport.requests[0].url.params["term"] == "genetics OR neuroscience"
        await adapter.close()


# ============================================================
# Failure handling
# ============================================================


class TestPubMedFailures:
    """search() never raises for upstream problems."""

    async def test_empty_id_list_skips_efetch(self, transport_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"esearchresult": {"count": "0", "idlist": []}})

        transport = transport_factory(handler)
        adapter = _adapter(transport)

        assert await adapter.search("nothing matches this", 10) == []
        assert len(transport.requests) == 1
        await adapter.close()

    async def test_connection_error_returns_empty(self, failing_transport):
        adapter = _adapter(failing_transport)

        assert await adapter.search("CRISPR", 10) == []
        await adapter.close()

    async def test_server_error_returns_empty(self, transport_factory):
        adapter = _adapter(transport_factory(lambda request: httpx.Response(503)))

        assert await adapter.search("CRISPR", 10) == []
        await adapter.close()

    async def test_esearch_error_field_returns_empty(self, transport_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"esearchresult": {"ERROR": "Invalid query"}})

        adapter = _adapter(transport_factory(handler))

        assert await adapter.search("((", 10) == []
        await adapter.close()

    async def test_malformed_xml_returns_empty(self, transport_factory, esearch_payload):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/esearch.fcgi"):
                return httpx.Response(200, json=esearch_payload)
            return httpx.Response(200, text="<PubmedArticleSet><PubmedArticle>")

        adapter = _adapter(transport_factory(handler))

        assert await adapter.search("CRISPR", 10) == []
        await adapter.close()

    async def test_retries_server_error_then_succeeds(self, transport_factory, eutils_handler):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return eutils_handler(request)

        adapter = _adapter(transport_factory(handler), max_retries=1, max_backoff=0.0)

        articles = await adapter.search("CRISPR", 10)

        assert len(articles) == 2
        assert calls["n"] == 3
        await adapter.close()

    async def test_open_circuit_skips_upstream(self, transport_factory):
        transport = transport_factory(lambda request: httpx.Response(500))
        adapter = _adapter(
            transport,
            circuit_breaker=CircuitBreaker(failure_threshold=1, recovery_timeout=60.0, name="pubmed"),
        )

        assert await adapter.search("CRISPR", 10) == []
        assert await adapter.search("CRISPR", 10) == []

        assert len(transport.requests) == 1
        await adapter.close()

    async def test_blank_query_makes_no_request(self, transport_factory, eutils_handler):
        transport = transport_factory(eutils_handler)
        adapter = _adapter(transport)

        assert await adapter.search("   ", 10) == []
        assert await adapter.search("CRISPR", 0) == []
        assert transport.requests == []
        await adapter.close()


# ============================================================
# XML parsing
# ============================================================


class TestPubMedParsing:
    """Record-level parsing helpers."""

    def test_one_outcome_per_record(self, efetch_xml):
        outcomes = parse_pubmed_xml(efetch_xml)

        assert [o.ok for o in outcomes] == [True, True, False]
        assert outcomes[2].record == "38000003"
        assert "ArticleTitle" in outcomes[2].error

    def test_empty_document(self):
        assert parse_pubmed_xml("") == []

    def test_invalid_document_raises(self):
        with pytest.raises(ParseError):
            parse_pubmed_xml("<not-closed>")

    @pytest.mark.parametrize(
        ("pub_date", "expected"),
        [
            ("<Year>2021</Year><Month>07</Month><Day>14</Day>", date(2021, 7, 14)),
            ("<Year>2021</Year><Month>Sep</Month>", date(2021, 9, 1)),
            ("<Year>2021</Year>", date(2021, 1, 1)),
            ("<Year>2023</Year><Month>Feb</Month><Day>30</Day>", date(2023, 2, 1)),
            ("<MedlineDate>2018 Winter</MedlineDate>", date(2018, 1, 1)),
        ],
    )
    def test_parse_pub_date(self, pub_date, expected):
        article = ET.fromstring(
            f"<Article><Journal><JournalIssue><PubDate>{pub_date}</PubDate></JournalIssue></Journal></Article>"
        )
        assert parse_pub_date(article) == expected

    def test_article_date_fallback(self):
        article = ET.fromstring(
            "<Article><Journal><JournalIssue><PubDate/></JournalIssue></Journal>"
            "<ArticleDate><Year>2020</Year><Month>5</Month><Day>2</Day></ArticleDate></Article>"
        )
        assert parse_pub_date(article) == date(2020, 5, 2)

    def test_no_date(self):
        assert parse_pub_date(ET.fromstring("<Article/>")) is None
