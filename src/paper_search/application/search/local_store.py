"""
Local store collaborator.

The platform's own article database lives outside this package. The search
pipeline only needs two read operations from it, described by
:class:`LocalStore`. :class:`InMemoryLocalStore` implements them over a list
of articles and backs the default container and the tests.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Protocol, runtime_checkable

from paper_search.models.article import Article

from .filters import SearchFilters, apply_filters


@dataclass(frozen=True)
class LocalSearchOptions:
    """Options forwarded to the local store."""
    limit: int = 60
    filters: SearchFilters = field(default_factory=SearchFilters)


@runtime_checkable
class LocalStore(Protocol):
    """Read access to locally stored articles."""

    async def full_text_search(self, query: str, options: LocalSearchOptions) -> list[Article]: ...

    async def advanced_search(self, options: LocalSearchOptions) -> list[Article]: ...


class InMemoryLocalStore:
    """
    List-backed store.

    ``full_text_search`` matches every whitespace-separated query word
    against title, abstract, keywords and author names and sets
    ``search_score`` to the share of matched words.
    """

    def __init__(self, articles: Iterable[Article] = ()) -> None:
        self._articles = [replace(a, is_local=True) for a in articles]

    def __len__(self) -> int:
        return len(self._articles)

    def add(self, article: Article) -> None:
        self._articles.append(replace(article, is_local=True))

    async def full_text_search(self, query: str, options: LocalSearchOptions) -> list[Article]:
        words = query.lower().split()
        if not words:
            return await self.advanced_search(options)

        hits: list[Article] = []
        for article in apply_filters(self._articles, options.filters):
            haystack = " ".join((
                article.title,
                article.abstract,
                " ".join(article.keywords),
                " ".join(article.author_names),
            )).lower()
            matched = sum(1 for word in words if word in haystack)
            if matched:
                hits.append(article.with_scores(search_score=matched / len(words)))

        hits.sort(key=lambda a: a.search_score or 0.0, reverse=True)
        return hits[: options.limit]

    async def advanced_search(self, options: LocalSearchOptions) -> list[Article]:
        return apply_filters(self._articles, options.filters)[: options.limit]
