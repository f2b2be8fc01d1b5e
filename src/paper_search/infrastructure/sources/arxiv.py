"""
arXiv adapter - Atom feed search.

Two query modes:
- free text:  ``all:<query>`` sorted by relevance
- browsing:   ``cat:a OR cat:b ...`` sorted by submission date, used when only
              categories were requested
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
from .normalize import clean_text, dedupe, derive_tags, extract_keywords

logger = logging.getLogger(__name__)

ARXIV_API_URL = "http://export.arxiv.org/api/query"
ARXIV_ABS_URL = "https://arxiv.org/abs/"
USER_AGENT = "paper-search-aggregator/0.1 (+https://arxiv.org/help/api)"

NAMESPACES = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
}

# Browsed when only a generic listing is asked for.
DEFAULT_BROWSE_CATEGORIES = (
    "q-bio",
    "cs.AI",
    "cs.LG",
    "cs.HC",
    "cs.CY",
    "eess.SP",
    "stat.ML",
)

# arXiv taxonomy code -> platform categories
CATEGORY_MAP: dict[str, tuple[str, ...]] = {
    "cs.AI": ("ai",),
    "cs.LG": ("ai",),
    "stat.ML": ("ai",),
    "q-bio.NC": ("neuroscience", "brain-computer-interface"),
    "cs.HC": ("neuroscience", "medical-devices", "brain-computer-interface"),
    "q-bio.BM": ("biotech",),
    "q-bio.GN": ("biotech",),
    "q-bio.MN": ("biotech",),
    "q-bio.TO": ("healthcare",),
    "q-bio.PE": ("healthcare",),
    "cs.CY": ("healthcare",),
    "eess.SP": ("medical-devices", "brain-computer-interface"),
}

# feeds are matched case-insensitively
_CATEGORY_INDEX = {code.lower(): targets for code, targets in CATEGORY_MAP.items()}

DEFAULT_CATEGORY = "ai"

_ABS_ID_RE = re.compile(r"arxiv\.org/abs/(.+)$")
_QUERY_SPECIALS_RE = re.compile(r"[:()\"]")


def map_categories(arxiv_categories: list[str]) -> list[str]:
    """Translate arXiv codes to platform categories, ``["ai"]`` when none map."""
    mapped: list[str] = []
    for code in arxiv_categories:
        mapped.extend(_CATEGORY_INDEX.get(code.lower(), ()))
    return dedupe(mapped) or [DEFAULT_CATEGORY]


def arxiv_codes_for(categories: tuple[str, ...]) -> list[str]:
    """Platform categories -> arXiv codes; unknown names pass through as codes."""
    codes: list[str] = []
    for category in categories:
        matches = [code for code, targets in CATEGORY_MAP.items() if category in targets]
        codes.extend(matches or [category])
    return dedupe(codes)


def build_search_query(query: str, categories: tuple[str, ...] = ()) -> tuple[str, str]:
    """
    Build the ``search_query`` expression and the sort key.

    Returns:
        (search_query, sortBy)
    """
    if query:
        escaped = _QUERY_SPECIALS_RE.sub(" ", query)
        escaped = " ".join(escaped.split())
        return f"all:{escaped}", "relevance"
    codes = arxiv_codes_for(categories) if categories else list(DEFAULT_BROWSE_CATEGORIES)
    return " OR ".join(f"cat:{code}" for code in codes), "submittedDate"


class ArXivAdapter(BaseSourceAdapter):
    """arXiv export API adapter."""

    name = "arxiv"

    def __init__(self, *, timeout: float = 10.0, **kwargs) -> None:
        kwargs.setdefault("headers", {"User-Agent": USER_AGENT})
        kwargs.setdefault("min_interval", 0.0)
        super().__init__(timeout=timeout, **kwargs)

    async def _search(
        self,
        query: str,
        max_results: int,
        categories: tuple[str, ...],
    ) -> list[Article]:
        search_query, sort_by = build_search_query(query, categories)
        params = {
            "search_query": search_query,
            "start": 0,
            "max_results": min(max_results, 100),
            "sortBy": sort_by,
            "sortOrder": "descending",
        }
        logger.info(f"arXiv search: {search_query}")
        xml_text = await self._request(ARXIV_API_URL, params=params, expect_json=False)
        return self.collect(parse_atom_feed(xml_text))


# =============================================================================
# Atom parsing
# =============================================================================

def parse_atom_feed(xml_text: str) -> list[ParseOutcome]:
    """Parse an arXiv Atom feed into one outcome per ``<entry>``."""
    if not xml_text or not xml_text.strip():
        return []
    try:
        root = ET.fromstring(xml_text)
    except (ET.ParseError, DefusedXmlException) as e:
        raise ParseError(str(e), source="arxiv") from e

    outcomes: list[ParseOutcome] = []
    for index, entry in enumerate(root.findall("atom:entry", NAMESPACES)):
        try:
            outcomes.append(ParseOutcome.success(parse_entry(entry)))
        except (ParseError, ValueError, AttributeError) as e:
            record = _text(entry.find("atom:id", NAMESPACES)) or f"entry[{index}]"
            outcomes.append(ParseOutcome.failure(str(e), record=record))
    return outcomes


def parse_entry(entry: Element) -> Article:
    """Normalize one Atom ``<entry>``."""
    raw_id = _text(entry.find("atom:id", NAMESPACES))
    match = _ABS_ID_RE.search(raw_id)
    if not match:
        raise ParseError(f"entry id {raw_id!r} is not an arXiv abs URL", source="arxiv")
    arxiv_id = match.group(1)

    title = clean_text(_text(entry.find("atom:title", NAMESPACES)))
    if not title:
        raise ParseError(f"entry {arxiv_id} has no title", source="arxiv")
    abstract = clean_text(_text(entry.find("atom:summary", NAMESPACES)))

    authors: list[Author] = []
    for author in entry.findall("atom:author", NAMESPACES):
        name = clean_text(_text(author.find("atom:name", NAMESPACES)))
        if name:
            affiliation = clean_text(_text(author.find("arxiv:affiliation", NAMESPACES))) or None
            authors.append(Author(name=name, affiliation=affiliation))

    arxiv_categories = _entry_categories(entry)
    published = _text(entry.find("atom:published", NAMESPACES))[:10]
    text = f"{title} {abstract}"

    return Article(
        id=f"arxiv_{arxiv_id}",
        title=title,
        abstract=abstract,
        authors=tuple(authors),
        categories=tuple(map_categories(arxiv_categories)),
        tags=tuple(derive_tags(text, DEFAULT_CATEGORY)),
        keywords=tuple(extract_keywords(text)),
        source=ArticleSource(
            name="arXiv",
            url=f"{ARXIV_ABS_URL}{arxiv_id}",
            type=SourceType.PREPRINT,
        ),
        doi=_entry_doi(entry),
        external_id=arxiv_id,
        publication_date=date.fromisoformat(published) if published else None,
        status=ArticleStatus.PREPRINT,
    )


def _entry_categories(entry: Element) -> list[str]:
    """Primary category first, then listed categories; lower-cased, deduplicated."""
    terms: list[str] = []
    primary = entry.find("arxiv:primary_category", NAMESPACES)
    if primary is not None and primary.get("term"):
        terms.append(primary.get("term", ""))
    for category in entry.findall("atom:category", NAMESPACES):
        if category.get("term"):
            terms.append(category.get("term", ""))
    return dedupe(term.strip().lower() for term in terms)


def _entry_doi(entry: Element) -> str | None:
    doi = _text(entry.find("arxiv:doi", NAMESPACES))
    if doi:
        return doi
    for link in entry.findall("atom:link", NAMESPACES):
        if link.get("title") == "doi" and link.get("href"):
            href = link.get("href", "")
            return href.split("doi.org/", 1)[-1]
    return None


def _text(elem: Element | None) -> str:
    if elem is None:
        return ""
    return "".join(elem.itertext()).strip()
