"""
PubMed adapter - NCBI E-utilities, two phases.

1. ``esearch.fcgi`` (JSON): query -> PMID list
2. ``efetch.fcgi`` (XML):   PMID list -> PubmedArticle records

An empty PMID list ends the search without the second call. Each
``PubmedArticle`` is normalized on its own; a record that cannot be parsed
is skipped and the rest of the batch is kept.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET  # Security: prevent XML attacks
from defusedxml import DefusedXmlException

from paper_search.core.exceptions import ParseError
from paper_search.models.article import (
    Article,
    ArticleSource,
    ArticleStatus,
    Author,
    SourceType,
)

from .base import BaseSourceAdapter, ParseOutcome
from .normalize import categorize, clean_text, dedupe, derive_tags

logger = logging.getLogger(__name__)

EUTILS_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
PUBMED_ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov/"
DEFAULT_JOURNAL = "Unknown Journal"
DEFAULT_CATEGORY = "healthcare"

ESEARCH_TIMEOUT = 10.0
EFETCH_TIMEOUT = 15.0

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "neuroscience": ("neuroscience", "brain", "neural", "neuron", "cognitive", "neurological"),
    "ai": ("artificial intelligence", "machine learning", "deep learning", "neural network", "algorithm"),
    "genetics": ("gene", "genetic", "dna", "rna", "genome", "crispr", "mutation"),
    "pharmaceuticals": ("drug", "pharmaceutical", "medicine", "therapy", "treatment", "clinical trial"),
    "biotech": ("biotechnology", "bioengineering", "synthetic biology", "protein", "enzyme"),
    "healthcare": ("health", "medical", "clinical", "patient", "diagnosis", "disease"),
    "medical-devices": ("device", "implant", "prosthetic", "sensor", "monitoring"),
    "brain-computer-interface": ("brain-computer", "bci", "neural interface", "neuroprosthetic"),
}

_YEAR_RE = re.compile(r"\b(\d{4})\b")


class PubMedAdapter(BaseSourceAdapter):
    """
    PubMed E-utilities adapter.

    NCBI allows 3 requests/second without an API key and 10 with one; the
    minimum request interval is set accordingly.
    """

    name = "pubmed"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        email: str | None = None,
        tool: str = "paper-search-aggregator",
        **kwargs,
    ) -> None:
        kwargs.setdefault("min_interval", 0.1 if api_key else 0.34)
        super().__init__(base_url=EUTILS_BASE_URL, timeout=EFETCH_TIMEOUT, **kwargs)
        self._api_key = api_key
        self._email = email
        self._tool = tool

    def _common_params(self) -> dict[str, str]:
        params = {"db": "pubmed", "tool": self._tool}
        if self._api_key:
            params["api_key"] = self._api_key
        if self._email:
            params["email"] = self._email
        return params

    async def _search(
        self,
        query: str,
        max_results: int,
        categories: tuple[str, ...],
    ) -> list[Article]:
        term = query or " OR ".join(categories)
        pmids = await self.esearch(term, max_results)
        if not pmids:
            logger.info(f"PubMed: no PMIDs for {term!r}")
            return []
        xml_text = await self.efetch(pmids)
        return self.collect(parse_pubmed_xml(xml_text))

    async def esearch(self, term: str, max_results: int) -> list[str]:
        """Phase 1: query -> PMIDs (relevance order)."""
        params = {
            **self._common_params(),
            "term": term,
            "retmax": max_results,
            "retmode": "json",
            "sort": "relevance",
        }
        payload = await self._request("/esearch.fcgi", params=params, timeout=ESEARCH_TIMEOUT)
        if not isinstance(payload, dict):
            raise ParseError("esearch payload is not an object", source=self.name)
        result = payload.get("esearchresult") or {}
        if "ERROR" in result:
            raise ParseError(f"esearch error: {result['ERROR']}", source=self.name)
        return [str(pmid) for pmid in result.get("idlist", []) if pmid]

    async def efetch(self, pmids: list[str]) -> str:
        """Phase 2: PMIDs -> PubmedArticleSet XML."""
        params = {
            **self._common_params(),
            "id": ",".join(pmids),
            "retmode": "xml",
            "rettype": "abstract",
        }
        return await self._request(
            "/efetch.fcgi",
            params=params,
            timeout=EFETCH_TIMEOUT,
            expect_json=False,
        )


# =============================================================================
# XML parsing
# =============================================================================

def parse_pubmed_xml(xml_text: str) -> list[ParseOutcome]:
    """Parse a ``PubmedArticleSet`` into one outcome per ``PubmedArticle``."""
    if not xml_text or not xml_text.strip():
        return []
    try:
        root = ET.fromstring(xml_text)
    except (ET.ParseError, DefusedXmlException) as e:
        raise ParseError(str(e), source="pubmed") from e

    outcomes: list[ParseOutcome] = []
    for index, record in enumerate(root.iter("PubmedArticle")):
        try:
            outcomes.append(ParseOutcome.success(parse_pubmed_article(record)))
        except (ParseError, ValueError, AttributeError) as e:
            pmid = _text(record.find("MedlineCitation/PMID")) or f"record[{index}]"
            outcomes.append(ParseOutcome.failure(str(e), record=pmid))
    return outcomes


def parse_pubmed_article(record: Element) -> Article:
    """Normalize one ``PubmedArticle`` element."""
    citation = record.find("MedlineCitation")
    if citation is None:
        raise ParseError("missing MedlineCitation", source="pubmed")

    pmid = _text(citation.find("PMID"))
    if not pmid:
        raise ParseError("missing PMID", source="pubmed")

    article = citation.find("Article")
    if article is None:
        raise ParseError(f"PMID {pmid}: missing Article", source="pubmed")

    title = clean_text(_text(article.find("ArticleTitle")))
    if not title:
        raise ParseError(f"PMID {pmid}: missing ArticleTitle", source="pubmed")

    abstract = clean_text(" ".join(
        _text(part) for part in article.findall("Abstract/AbstractText")
    ))
    journal = clean_text(_text(article.find("Journal/Title"))) or DEFAULT_JOURNAL

    keywords = dedupe(
        [clean_text(_text(d)) for d in citation.findall("MeshHeadingList/MeshHeading/DescriptorName")]
        + [clean_text(_text(k)) for k in citation.findall("KeywordList/Keyword")]
    )

    text = f"{title} {abstract} {' '.join(keywords)}"

    return Article(
        id=f"pubmed_{pmid}",
        title=title,
        abstract=abstract,
        authors=tuple(_parse_authors(article)),
        categories=tuple(categorize(text, CATEGORY_KEYWORDS, DEFAULT_CATEGORY)),
        tags=tuple(derive_tags(text, DEFAULT_CATEGORY)),
        keywords=tuple(keywords),
        source=ArticleSource(
            name=journal,
            url=f"{PUBMED_ARTICLE_URL}{pmid}/",
            type=SourceType.JOURNAL,
        ),
        doi=_parse_doi(record),
        external_id=pmid,
        publication_date=parse_pub_date(article),
        status=ArticleStatus.PUBLISHED,
    )


def _parse_authors(article: Element) -> list[Author]:
    authors: list[Author] = []
    for author in article.findall("AuthorList/Author"):
        fore = _text(author.find("ForeName"))
        last = _text(author.find("LastName"))
        name = " ".join(p for p in (fore, last) if p) or _text(author.find("CollectiveName"))
        if not name:
            continue
        affiliation = _text(author.find("AffiliationInfo/Affiliation")) or None
        authors.append(Author(name=clean_text(name), affiliation=affiliation))
    return authors


def _parse_doi(record: Element) -> str | None:
    """Scan ``ArticleIdList`` for ``IdType="doi"``."""
    for article_id in record.findall("PubmedData/ArticleIdList/ArticleId"):
        if article_id.get("IdType") == "doi":
            doi = _text(article_id)
            if doi:
                return doi
    return None


def parse_pub_date(article: Element) -> date | None:
    """
    Publication date from ``Journal/JournalIssue/PubDate``.

    Month may be numeric or an English month name; missing month/day default
    to 1. ``MedlineDate`` ("2019 Nov-Dec") and ``ArticleDate`` are fallbacks.
    """
    pub_date = article.find("Journal/JournalIssue/PubDate")
    if pub_date is not None:
        year = _text(pub_date.find("Year"))
        if year.isdigit():
            month = _parse_month(_text(pub_date.find("Month")))
            day = _text(pub_date.find("Day"))
            return _safe_date(int(year), month, int(day) if day.isdigit() else 1)
        medline = _YEAR_RE.search(_text(pub_date.find("MedlineDate")))
        if medline:
            return date(int(medline.group(1)), 1, 1)

    article_date = article.find("ArticleDate")
    if article_date is not None:
        year = _text(article_date.find("Year"))
        if year.isdigit():
            month = _parse_month(_text(article_date.find("Month")))
            day = _text(article_date.find("Day"))
            return _safe_date(int(year), month, int(day) if day.isdigit() else 1)
    return None


def _parse_month(raw: str) -> int:
    if not raw:
        return 1
    if raw.isdigit():
        month = int(raw)
        return month if 1 <= month <= 12 else 1
    return MONTHS.get(raw[:3].lower(), 1)


def _safe_date(year: int, month: int, day: int) -> date:
    try:
        return date(year, month, day)
    except ValueError:
        return date(year, month, 1)


def _text(elem: Element | None) -> str:
    """All text inside ``elem`` (inline markup such as <i> included)."""
    if elem is None:
        return ""
    return "".join(elem.itertext()).strip()
