"""
Article - the normalized record every source adapter produces.

PubMed XML, arXiv Atom and bioRxiv JSON all end up in the same frozen
``Article`` shape, as do rows handed over by the local store. Instances are
immutable: scores computed during ranking are attached with
:meth:`Article.with_scores`, which returns a copy.

``to_dict`` emits the camelCase wire format used by the HTTP API and by the
result cache; ``from_dict`` reverses it.

Example:
    >>> article = Article(
    ...     id="pubmed_12345678",
    ...     title="CRISPR base editing in vivo",
    ...     source=ArticleSource(name="Nature", url="https://pubmed.ncbi.nlm.nih.gov/12345678/"),
    ...     external_id="12345678",
    ... )
    >>> article.to_dict()["source"]["type"]
    'journal'
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any


class SourceType(Enum):
    """Kind of venue an article was published in."""
    JOURNAL = "journal"
    PREPRINT = "preprint"
    CONFERENCE = "conference"
    PATENT = "patent"


class ArticleStatus(Enum):
    """Publication status."""
    PUBLISHED = "published"
    PREPRINT = "preprint"
    UNDER_REVIEW = "under-review"


@dataclass(frozen=True, slots=True)
class Author:
    """Author name as printed, with an optional affiliation."""
    name: str
    affiliation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "affiliation": self.affiliation}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str) -> Author:
        if isinstance(data, str):
            return cls(name=data)
        return cls(name=data.get("name", ""), affiliation=data.get("affiliation"))


@dataclass(frozen=True, slots=True)
class ArticleSource:
    """Where the article came from (journal name, arXiv, bioRxiv, ...)."""
    name: str
    url: str = ""
    type: SourceType = SourceType.JOURNAL

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "url": self.url, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArticleSource:
        return cls(
            name=data.get("name", ""),
            url=data.get("url", ""),
            type=SourceType(data.get("type", SourceType.JOURNAL.value)),
        )


@dataclass(frozen=True, slots=True)
class ArticleMetrics:
    """Editorial scores, 0-10 scale. Upstream APIs supply none of them."""
    impact_score: float = 0.0
    readability_score: float = 0.0
    novelty_score: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "impactScore": self.impact_score,
            "readabilityScore": self.readability_score,
            "noveltyScore": self.novelty_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArticleMetrics:
        return cls(
            impact_score=float(data.get("impactScore", 0.0)),
            readability_score=float(data.get("readabilityScore", 0.0)),
            novelty_score=float(data.get("noveltyScore", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class Article:
    """
    Normalized research article.

    Identity:
        id           - stable per source ("pubmed_<pmid>", "arxiv_<id>", ...)
        doi          - optional, used for cross-source deduplication
        external_id  - identifier in the upstream system (PMID, arXiv id)

    Ranking fields (``search_score``, ``semantic_score``,
    ``similarity_score``) are ephemeral and only set on copies.
    """
    id: str
    title: str
    source: ArticleSource
    abstract: str = ""
    authors: tuple[Author, ...] = ()
    categories: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    doi: str | None = None
    external_id: str | None = None
    publication_date: date | None = None
    citation_count: int = 0
    view_count: int = 0
    bookmark_count: int = 0
    trending_score: float = 0.0
    status: ArticleStatus = ArticleStatus.PUBLISHED
    metrics: ArticleMetrics = field(default_factory=ArticleMetrics)
    is_local: bool = False
    is_synthetic: bool = False
    search_score: float | None = None
    semantic_score: float | None = None
    similarity_score: float | None = None

    def __post_init__(self) -> None:
        if self.trending_score < 0:
            raise ValueError(f"trending_score must be >= 0, got {self.trending_score}")

    # -------------------------------------------------------------------------
    # Convenience accessors
    # -------------------------------------------------------------------------

    @property
    def normalized_doi(self) -> str | None:
        return normalize_doi(self.doi) if self.doi else None

    @property
    def normalized_title(self) -> str:
        return normalize_title(self.title)

    @property
    def author_names(self) -> list[str]:
        return [a.name for a in self.authors]

    @property
    def year(self) -> int | None:
        return self.publication_date.year if self.publication_date else None

    def with_scores(
        self,
        *,
        search_score: float | None = None,
        semantic_score: float | None = None,
        similarity_score: float | None = None,
    ) -> Article:
        """Return a copy with the given ranking scores attached."""
        changes: dict[str, float] = {}
        if search_score is not None:
            changes["search_score"] = search_score
        if semantic_score is not None:
            changes["semantic_score"] = semantic_score
        if similarity_score is not None:
            changes["similarity_score"] = similarity_score
        return replace(self, **changes)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase JSON shape served by the API."""
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "abstract": self.abstract,
            "authors": [a.to_dict() for a in self.authors],
            "categories": list(self.categories),
            "tags": list(self.tags),
            "keywords": list(self.keywords),
            "source": self.source.to_dict(),
            "doi": self.doi,
            "externalId": self.external_id,
            "publicationDate": self.publication_date.isoformat() if self.publication_date else None,
            "citationCount": self.citation_count,
            "viewCount": self.view_count,
            "bookmarkCount": self.bookmark_count,
            "trendingScore": self.trending_score,
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
            "isLocal": self.is_local,
            "isSynthetic": self.is_synthetic,
        }
        if self.search_score is not None:
            result["searchScore"] = round(self.search_score, 4)
        if self.semantic_score is not None:
            result["semanticScore"] = round(self.semantic_score, 4)
        if self.similarity_score is not None:
            result["similarityScore"] = round(self.similarity_score, 4)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Article:
        """Rebuild an Article from :meth:`to_dict` output."""
        published = data.get("publicationDate")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            abstract=data.get("abstract") or "",
            authors=tuple(Author.from_dict(a) for a in data.get("authors", [])),
            categories=tuple(data.get("categories", [])),
            tags=tuple(data.get("tags", [])),
            keywords=tuple(data.get("keywords", [])),
            source=ArticleSource.from_dict(data.get("source", {})),
            doi=data.get("doi"),
            external_id=data.get("externalId"),
            publication_date=date.fromisoformat(published) if published else None,
            citation_count=int(data.get("citationCount", 0)),
            view_count=int(data.get("viewCount", 0)),
            bookmark_count=int(data.get("bookmarkCount", 0)),
            trending_score=float(data.get("trendingScore", 0.0)),
            status=ArticleStatus(data.get("status", ArticleStatus.PUBLISHED.value)),
            metrics=ArticleMetrics.from_dict(data.get("metrics", {})),
            is_local=bool(data.get("isLocal", False)),
            is_synthetic=bool(data.get("isSynthetic", False)),
            search_score=data.get("searchScore"),
            semantic_score=data.get("semanticScore"),
            similarity_score=data.get("similarityScore"),
        )


# =============================================================================
# Source query and cache key
# =============================================================================

_WHITESPACE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """Trim, collapse whitespace and lower-case a query string."""
    return _WHITESPACE.sub(" ", query or "").strip().lower()


@dataclass(frozen=True, slots=True)
class SourceQuery:
    """One adapter call: which source, what query, how many results."""
    source: str
    query: str
    max_results: int

    @classmethod
    def build(cls, source: str, query: str, max_results: int) -> SourceQuery:
        return cls(source=source, query=normalize_query(query), max_results=max_results)

    @property
    def cache_key(self) -> str:
        """Deterministic key for (source, normalized query, max_results)."""
        digest = hashlib.sha256(
            f"{self.source}\x1f{self.query}\x1f{self.max_results}".encode("utf-8")
        ).hexdigest()[:32]
        return f"search:{self.source}:{digest}"


# =============================================================================
# Identity normalization (used for deduplication)
# =============================================================================

def normalize_doi(doi: str) -> str:
    """Normalize DOI for comparison."""
    doi = doi.lower().strip()
    for prefix in ("https://doi.org/", "http://doi.org/", "https://dx.doi.org/", "doi:"):
        if doi.startswith(prefix):
            doi = doi[len(prefix):]
    return doi.strip()


def normalize_title(title: str) -> str:
    """Lower-case, trim and collapse whitespace."""
    return _WHITESPACE.sub(" ", title or "").strip().lower()
