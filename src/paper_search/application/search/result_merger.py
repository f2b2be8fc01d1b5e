"""
Result merging - cross-source deduplication.

Articles from the local store and every external source are merged into one
list in which no two entries share a normalized DOI or a normalized title.
Duplicates are grouped with Union-Find (DOI and title links are transitive),
one primary is kept per group and gaps in it are filled from the others.
Output order is the arrival order of each group's first member.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from paper_search.infrastructure.sources.normalize import dedupe
from paper_search.models.article import Article

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    """Statistics from the merge step."""

    total_input: int = 0
    unique_articles: int = 0
    duplicates_removed: int = 0
    by_source: dict[str, int] = field(default_factory=dict)
    dedup_by_doi: int = 0
    dedup_by_title: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_input": self.total_input,
            "unique_articles": self.unique_articles,
            "duplicates_removed": self.duplicates_removed,
            "by_source": self.by_source,
            "dedup_by_doi": self.dedup_by_doi,
            "dedup_by_title": self.dedup_by_title,
        }


# =============================================================================
# Union-Find
# =============================================================================


class UnionFind:
    """Disjoint Set Union with path compression and union by rank."""

    def __init__(self, n: int):
        self.parent = list(range(n))
        self.rank = [0] * n

    def find(self, x: int) -> int:
        """Find root with path compression."""
        if self.parent[x] != x:
            self.parent[x] = self.find(self.parent[x])
        return self.parent[x]

    def union(self, x: int, y: int) -> bool:
        """Union by rank. Returns True if x and y were in different sets."""
        px, py = self.find(x), self.find(y)
        if px == py:
            return False
        if self.rank[px] < self.rank[py]:
            px, py = py, px
        self.parent[py] = px
        if self.rank[px] == self.rank[py]:
            self.rank[px] += 1
        return True

    def get_groups(self) -> list[list[int]]:
        """Groups of member indices, ordered by their smallest member."""
        groups: dict[int, list[int]] = {}
        for i in range(len(self.parent)):
            groups.setdefault(self.find(i), []).append(i)
        return sorted(groups.values(), key=lambda members: members[0])


# =============================================================================
# Merge
# =============================================================================


def merge_results(
    article_lists: Iterable[Sequence[Article]],
) -> tuple[list[Article], MergeStats]:
    """
    Flatten and deduplicate article lists.

    Args:
        article_lists: Lists in priority order (local results first)

    Returns:
        Tuple of (deduplicated articles, merge statistics)
    """
    stats = MergeStats()
    articles: list[Article] = []
    for batch in article_lists:
        for article in batch:
            articles.append(article)
            source = article.source.name
            stats.by_source[source] = stats.by_source.get(source, 0) + 1
    stats.total_input = len(articles)
    if not articles:
        return [], stats

    uf = UnionFind(len(articles))
    doi_to_idx: dict[str, int] = {}
    title_to_idx: dict[str, int] = {}

    for i, article in enumerate(articles):
        doi = article.normalized_doi
        if doi:
            if doi in doi_to_idx:
                if uf.union(i, doi_to_idx[doi]):
                    stats.dedup_by_doi += 1
            else:
                doi_to_idx[doi] = i

        title = article.normalized_title
        if title:
            if title in title_to_idx:
                if uf.union(i, title_to_idx[title]):
                    stats.dedup_by_title += 1
            else:
                title_to_idx[title] = i

    unique: list[Article] = []
    for members in uf.get_groups():
        group = [articles[i] for i in members]
        unique.append(group[0] if len(group) == 1 else _merge_group(group))

    stats.unique_articles = len(unique)
    stats.duplicates_removed = stats.total_input - stats.unique_articles
    if stats.duplicates_removed:
        logger.debug(f"Merged results: {stats.to_dict()}")
    return unique, stats


def _select_primary(group: list[Article]) -> Article:
    """
    Select the primary article from duplicates.

    Prefers local records, then more complete metadata, then earliest arrival.
    """

    def score(indexed: tuple[int, Article]) -> tuple[int, int, int]:
        index, article = indexed
        completeness = sum(
            1
            for x in (article.abstract, article.doi, article.authors, article.publication_date, article.keywords)
            if x
        )
        return (int(article.is_local), completeness, -index)

    return max(enumerate(group), key=score)[1]


def _merge_group(group: list[Article]) -> Article:
    """Primary record with empty fields filled from its duplicates."""
    primary = _select_primary(group)
    others = [a for a in group if a is not primary]

    changes: dict[str, Any] = {}
    if not primary.abstract:
        changes["abstract"] = next((a.abstract for a in others if a.abstract), "")
    if not primary.doi:
        changes["doi"] = next((a.doi for a in others if a.doi), None)
    if not primary.authors:
        changes["authors"] = next((a.authors for a in others if a.authors), ())
    if not primary.publication_date:
        changes["publication_date"] = next(
            (a.publication_date for a in others if a.publication_date), None
        )
    changes["keywords"] = tuple(dedupe([*primary.keywords, *(k for a in others for k in a.keywords)]))
    changes["categories"] = tuple(dedupe([*primary.categories, *(c for a in others for c in a.categories)]))
    return replace(primary, **changes)
