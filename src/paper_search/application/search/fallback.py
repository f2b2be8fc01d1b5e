"""
Degraded-mode placeholders.

When every source comes back empty for a real query, the orchestrator may
return a few clearly marked synthetic articles instead of nothing. They are
deterministic for a given (query, category, day), never local, and carry
``is_synthetic=True`` so clients can label or hide them.
"""

from __future__ import annotations

import hashlib
from datetime import date, timedelta

from paper_search.models.article import (
    Article,
    ArticleMetrics,
    ArticleSource,
    ArticleStatus,
    Author,
    SourceType,
)

MAX_PLACEHOLDERS = 3

_TITLES = (
    "Recent Advances in {term} Research",
    "{term} Applications in Clinical Practice",
    "Future Perspectives on {term} Technology",
)

_ABSTRACTS = (
    "Placeholder summary of recent {term} research. Live sources were "
    "unavailable when this result was generated.",
    "Placeholder overview of clinical applications of {term}. Live sources "
    "were unavailable when this result was generated.",
    "Placeholder outlook on {term} technology. Live sources were unavailable "
    "when this result was generated.",
)


def synthetic_articles(
    query: str,
    categories: tuple[str, ...] = (),
    max_results: int = MAX_PLACEHOLDERS,
    today: date | None = None,
) -> list[Article]:
    """
    Up to ``min(max_results, 3)`` placeholders for ``query`` or the first category.

    Returns an empty list when neither a query nor a category is given.
    """
    term = query.strip() or (categories[0] if categories else "")
    if not term:
        return []
    category = categories[0] if categories else "general"
    today = today or date.today()
    digest = hashlib.sha1(f"{term.lower()}|{category}".encode("utf-8")).hexdigest()[:12]
    display = term if not term.islower() else term.title()

    articles: list[Article] = []
    for i in range(min(max_results, MAX_PLACEHOLDERS)):
        articles.append(Article(
            id=f"synthetic_{digest}_{i + 1}",
            title=_TITLES[i].format(term=display),
            abstract=_ABSTRACTS[i].format(term=term),
            authors=(Author(name="Research Digest", affiliation=None),),
            categories=(category,),
            tags=(category,),
            keywords=(term.lower(),),
            source=ArticleSource(name="Research Digest", url="", type=SourceType.JOURNAL),
            publication_date=today - timedelta(days=30 * (i + 1)),
            status=ArticleStatus.PUBLISHED,
            metrics=ArticleMetrics(),
            is_local=False,
            is_synthetic=True,
        ))
    return articles
