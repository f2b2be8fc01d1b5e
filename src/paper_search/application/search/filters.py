"""
Post-merge filtering, sorting and pagination used by the HTTP layer.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from paper_search.models.article import Article, ArticleStatus


class SortField(Enum):
    RELEVANCE = "relevance"
    DATE = "date"
    CITATIONS = "citations"
    VIEWS = "views"
    TRENDING = "trending"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SearchFilters:
    """
    Every field is optional; an empty filter keeps everything.

    ``sources`` matches the article origin (``local``, ``pubmed``, ``arxiv``,
    ``biorxiv``) or the source name, case-insensitively.
    """
    categories: tuple[str, ...] = ()
    authors: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    statuses: tuple[ArticleStatus, ...] = ()
    date_from: date | None = None
    date_to: date | None = None
    min_citations: int | None = None
    max_citations: int | None = None
    min_impact: float | None = None
    max_impact: float | None = None

    @property
    def is_empty(self) -> bool:
        return self == SearchFilters()


@dataclass(frozen=True)
class Page:
    """One page of results plus totals."""
    items: list[Article] = field(default_factory=list)
    page: int = 1
    limit: int = 20
    total: int = 0

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


def article_origin(article: Article) -> str:
    """``local`` for store records, otherwise the id prefix (``pubmed``...)."""
    if article.is_local:
        return "local"
    return article.id.split("_", 1)[0]


def _matches(article: Article, f: SearchFilters) -> bool:
    if f.categories:
        wanted = {c.lower() for c in f.categories if c.lower() != "all"}
        if wanted and not wanted.intersection(c.lower() for c in article.categories):
            return False
    if f.authors:
        names = " ".join(article.author_names).lower()
        if not any(author.lower() in names for author in f.authors):
            return False
    if f.sources:
        wanted_sources = {s.lower() for s in f.sources}
        if article_origin(article) not in wanted_sources and article.source.name.lower() not in wanted_sources:
            return False
    if f.statuses and article.status not in f.statuses:
        return False
    if f.date_from or f.date_to:
        published = article.publication_date
        if published is None:
            return False
        if f.date_from and published < f.date_from:
            return False
        if f.date_to and published > f.date_to:
            return False
    if f.min_citations is not None and article.citation_count < f.min_citations:
        return False
    if f.max_citations is not None and article.citation_count > f.max_citations:
        return False
    impact = article.metrics.impact_score
    if f.min_impact is not None and impact < f.min_impact:
        return False
    if f.max_impact is not None and impact > f.max_impact:
        return False
    return True


def apply_filters(articles: Iterable[Article], filters: SearchFilters) -> list[Article]:
    """Articles passing every filter, in input order."""
    if filters.is_empty:
        return list(articles)
    return [a for a in articles if _matches(a, filters)]


def sort_articles(
    articles: Sequence[Article],
    by: SortField = SortField.RELEVANCE,
    order: SortOrder = SortOrder.DESC,
) -> list[Article]:
    """
    Sort by the requested field.

    ``relevance`` keeps the incoming (ranked) order, reversed for ``asc``.
    Articles without a date sort last for ``date`` either way.
    """
    reverse = order is SortOrder.DESC
    if by is SortField.RELEVANCE:
        return list(articles) if reverse else list(reversed(articles))
    if by is SortField.DATE:
        dated = [a for a in articles if a.publication_date]
        undated = [a for a in articles if not a.publication_date]
        dated.sort(key=lambda a: a.publication_date, reverse=reverse)
        return dated + undated
    key = {
        SortField.CITATIONS: lambda a: a.citation_count,
        SortField.VIEWS: lambda a: a.view_count,
        SortField.TRENDING: lambda a: a.trending_score,
    }[by]
    return sorted(articles, key=key, reverse=reverse)


def paginate(articles: Sequence[Article], page: int = 1, limit: int = 20) -> Page:
    """Slice ``articles`` into a 1-based page."""
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    return Page(items=list(articles[start:start + limit]), page=page, limit=limit, total=len(articles))
