"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any

import httpx
import pytest

from paper_search.models.article import (
    Article,
    ArticleMetrics,
    ArticleSource,
    ArticleStatus,
    Author,
    SourceType,
)

# ============================================================
# Article Fixtures
# ============================================================


@pytest.fixture
def make_article() -> Callable[..., Article]:
    """Factory for articles with sensible defaults; override any field."""

    def factory(id: str = "pubmed_1", title: str = "Test Article", **overrides: Any) -> Article:
        values: dict[str, Any] = {
            "id": id,
            "title": title,
            "abstract": "",
            "source": ArticleSource(name="Journal of Tests", url="https://example.org", type=SourceType.JOURNAL),
            "authors": (Author(name="Jane Doe"),),
            "publication_date": date(2024, 1, 15),
            "status": ArticleStatus.PUBLISHED,
            "metrics": ArticleMetrics(),
        }
        values.update(overrides)
        return Article(**values)

    return factory


# ============================================================
# Mock HTTP Transport
# ============================================================


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording)


@pytest.fixture
def transport_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], RecordingTransport]:
    """Build a recording transport around a request handler."""
    return RecordingTransport


@pytest.fixture
def failing_transport() -> RecordingTransport:
    """Every request fails with a connection error."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return RecordingTransport(handler)


# ============================================================
# Mock PubMed E-utilities Responses
# ============================================================


@pytest.fixture
def esearch_payload() -> dict[str, Any]:
    """Mock response from NCBI ESearch (JSON)."""
    return {
        "header": {"type": "esearch", "version": "0.3"},
        "esearchresult": {
            "count": "3",
            "retmax": "3",
            "idlist": ["38000001", "38000002", "38000003"],
        },
    }


@pytest.fixture
def efetch_xml() -> str:
    """Mock response from NCBI EFetch: two good records and one without a title."""
    return """<?xml version="1.0" ?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <PMID Version="1">38000001</PMID>
      <Article>
        <Journal>
          <JournalIssue>
            <PubDate><Year>2024</Year><Month>Mar</Month><Day>05</Day></PubDate>
          </JournalIssue>
          <Title>Nature Biotechnology</Title>
        </Journal>
        <ArticleTitle>CRISPR gene editing in <i>human</i> stem cells</ArticleTitle>
        <Abstract>
          <AbstractText Label="BACKGROUND">Gene editing with CRISPR enables precise changes.</AbstractText>
          <AbstractText Label="RESULTS">Stem cell therapy outcomes improved.</AbstractText>
        </Abstract>
        <AuthorList>
          <Author>
            <LastName>Smith</LastName>
            <ForeName>John</ForeName>
            <AffiliationInfo><Affiliation>Broad Institute</Affiliation></AffiliationInfo>
          </Author>
          <Author>
            <LastName>Doe</LastName>
            <ForeName>Jane</ForeName>
          </Author>
        </AuthorList>
      </Article>
      <MeshHeadingList>
        <MeshHeading><DescriptorName>Gene Editing</DescriptorName></MeshHeading>
        <MeshHeading><DescriptorName>Stem Cells</DescriptorName></MeshHeading>
      </MeshHeadingList>
      <KeywordList><Keyword>CRISPR</Keyword></KeywordList>
    </MedlineCitation>
    <PubmedData>
      <ArticleIdList>
        <ArticleId IdType="pubmed">38000001</ArticleId>
        <ArticleId IdType="doi">10.1038/nbt.2024.001</ArticleId>
      </ArticleIdList>
    </PubmedData>
  </PubmedArticle>
  <PubmedArticle>
    <MedlineCitation>
      <PMID Version="1">38000002</PMID>
      <Article>
        <Journal>
          <JournalIssue>
            <PubDate><MedlineDate>2019 Nov-Dec</MedlineDate></PubDate>
          </JournalIssue>
        </Journal>
        <ArticleTitle>Consortium report on brain imaging</ArticleTitle>
        <AuthorList>
          <Author><CollectiveName>Brain Imaging Consortium</CollectiveName></Author>
        </AuthorList>
      </Article>
    </MedlineCitation>
  </PubmedArticle>
  <PubmedArticle>
    <MedlineCitation>
      <PMID Version="1">38000003</PMID>
      <Article>
        <Journal><Title>Broken Journal</Title></Journal>
      </Article>
    </MedlineCitation>
  </PubmedArticle>
</PubmedArticleSet>
"""


# ============================================================
# Mock arXiv Atom Feed
# ============================================================


@pytest.fixture
def arxiv_atom() -> str:
    """Two valid entries and one whose id is not an abs URL."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <title>ArXiv Query</title>
  <entry>
    <id>http://arxiv.org/abs/2401.01234v2</id>
    <published>2024-01-03T18:00:00Z</published>
    <title>Deep learning for
      brain-computer interface decoding</title>
    <summary>We apply deep learning and neural networks to decode motor intent
      from EEG signals for brain-computer interface control.</summary>
    <author>
      <name>Alice Chen</name>
      <arxiv:affiliation>MIT</arxiv:affiliation>
    </author>
    <author><name>Bob Kumar</name></author>
    <arxiv:doi>10.1000/bci.2024.7</arxiv:doi>
    <arxiv:primary_category term="cs.HC" scheme="http://arxiv.org/schemas/atom"/>
    <category term="cs.HC" scheme="http://arxiv.org/schemas/atom"/>
    <category term="cs.LG" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
  <entry>
    <id>http://arxiv.org/abs/2402.05678v1</id>
    <published>2024-02-10T09:30:00Z</published>
    <title>Quantum error correction thresholds</title>
    <summary>Threshold analysis for surface codes.</summary>
    <author><name>Carol Ng</name></author>
    <link title="doi" href="http://dx.doi.org/10.1103/PhysRev.2024.55" rel="related"/>
    <category term="quant-ph" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
  <entry>
    <id>not-a-valid-id</id>
    <title>Broken entry</title>
  </entry>
</feed>
"""


# ============================================================
# Mock bioRxiv Details Payload
# ============================================================


@pytest.fixture
def biorxiv_payload() -> dict[str, Any]:
    """Details collection: two neuro items, one unrelated, one malformed."""
    return {
        "messages": [{"status": "ok", "count": 4, "total": "4"}],
        "collection": [
            {
                "doi": "10.1101/2024.01.01.000001",
                "title": "Neuroinflammation in mouse cortex",
                "authors": "Lee, A.; Park, B.; ",
                "date": "2024-01-02",
                "category": "neuroscience",
                "abstract": "Microglia drive inflammation.",
            },
            {
                "doi": "10.1101/2024.01.05.000002",
                "title": "Soil bacteria diversity",
                "authors": "Gomez, R.",
                "date": "2024-01-05",
                "category": "microbiology",
                "abstract": "Sampling across biomes.",
            },
            {
                "doi": "10.1101/2024.02.01.000003",
                "title": "Cortical mapping",
                "authors": "Ito, K.",
                "date": "2024-02-01",
                "category": "neuroscience",
                "abstract": "A NEUROimaging atlas of the adult brain.",
            },
            {
                "doi": "10.1101/2024.02.09.000004",
                "title": "Neuronal crest migration",
                "authors": "Ruiz, M.",
                "date": "not-a-date",
                "category": "developmental biology",
                "abstract": "",
            },
        ],
    }
