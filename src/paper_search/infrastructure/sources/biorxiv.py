"""
bioRxiv adapter - date-window listing filtered client-side.

The details API has no text search: ``/details/biorxiv/{from}/{to}/{cursor}``
returns every preprint posted in the window, 100 per page. Matching against
the query happens here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any

from paper_search.core.exceptions import ParseError
from paper_search.models.article import (
    Article,
    ArticleSource,
    ArticleStatus,
    Author,
    SourceType,
)

from .base import BaseSourceAdapter, ParseOutcome
from .normalize import clean_text, dedupe, derive_tags

logger = logging.getLogger(__name__)

BIORXIV_API_URL = "https://api.biorxiv.org/details/biorxiv"
BIORXIV_CONTENT_URL = "https://www.biorxiv.org/content/"
DEFAULT_WINDOW_DAYS = 2 * 365
DEFAULT_CATEGORY = "biology"


def coarse_category(query: str, title: str) -> str:
    """``neuroscience`` / ``biotechnology`` by keyword, otherwise ``biology``."""
    text = f"{query} {title}".lower()
    if "neuro" in text:
        return "neuroscience"
    if "biotech" in text:
        return "biotechnology"
    return DEFAULT_CATEGORY


class BioRxivAdapter(BaseSourceAdapter):
    """bioRxiv details API adapter."""

    name = "biorxiv"

    def __init__(
        self,
        *,
        window_days: int = DEFAULT_WINDOW_DAYS,
        max_pages: int = 1,
        timeout: float = 15.0,
        today: Callable[[], date] = date.today,
        **kwargs,
    ) -> None:
        super().__init__(base_url=BIORXIV_API_URL, timeout=timeout, **kwargs)
        self._window_days = window_days
        self._max_pages = max(1, max_pages)
        self._today = today

    def date_window(self) -> tuple[str, str]:
        end = self._today()
        start = end - timedelta(days=self._window_days)
        return start.isoformat(), end.isoformat()

    async def _search(
        self,
        query: str,
        max_results: int,
        categories: tuple[str, ...],
    ) -> list[Article]:
        start, end = self.date_window()
        logger.info(f"bioRxiv search: {query or categories!r} ({start} to {end})")

        matches: list[Article] = []
        cursor = 0
        for _ in range(self._max_pages):
            payload = await self._request(f"/{start}/{end}/{cursor}")
            if not isinstance(payload, dict):
                raise ParseError("details payload is not an object", source=self.name)
            collection = payload.get("collection") or []
            if not collection:
                break

            outcomes = [
                parse_biorxiv_item(item, query)
                for item in collection
                if _matches(item, query, categories)
            ]
            matches.extend(self.collect(outcomes))
            if len(matches) >= max_results:
                break
            cursor += len(collection)
            if cursor >= _total_in_window(payload):
                break

        return matches[:max_results]


def _matches(item: Any, query: str, categories: tuple[str, ...]) -> bool:
    """Whole-query, case-insensitive substring test on title or abstract."""
    if not isinstance(item, dict):
        return True  # let the parser report it
    title = str(item.get("title") or "").lower()
    abstract = str(item.get("abstract") or "").lower()
    if query:
        needle = query.lower()
        return needle in title or needle in abstract
    subject = str(item.get("category") or "").lower()
    return any(c.lower() in subject or c.lower() in title for c in categories)


def _total_in_window(payload: dict[str, Any]) -> int:
    messages = payload.get("messages") or []
    if messages and isinstance(messages[0], dict):
        try:
            return int(messages[0].get("total", 0))
        except (TypeError, ValueError):
            return 0
    return 0


def parse_biorxiv_item(item: Any, query: str = "") -> ParseOutcome:
    """Normalize one entry of the ``collection`` array."""
    if not isinstance(item, dict):
        return ParseOutcome.failure(f"expected object, got {type(item).__name__}")

    doi = str(item.get("doi") or "").strip()
    title = clean_text(item.get("title"))
    if not doi or not title:
        return ParseOutcome.failure("missing doi or title", record=doi or None)

    try:
        published = date.fromisoformat(str(item.get("date", ""))[:10]) if item.get("date") else None
    except ValueError as e:
        return ParseOutcome.failure(f"bad date {item.get('date')!r}: {e}", record=doi)

    abstract = clean_text(item.get("abstract"))
    authors = [
        Author(name=name.strip())
        for name in str(item.get("authors") or "").split(";")
        if name.strip()
    ]
    subject = clean_text(item.get("category"))
    category = coarse_category(query, title)

    return ParseOutcome.success(Article(
        id=f"biorxiv_{doi}",
        title=title,
        abstract=abstract,
        authors=tuple(authors),
        categories=(category,),
        tags=tuple(derive_tags(f"{title} {abstract}", category)),
        keywords=tuple(dedupe([subject])),
        source=ArticleSource(
            name="bioRxiv",
            url=f"{BIORXIV_CONTENT_URL}{doi}",
            type=SourceType.PREPRINT,
        ),
        doi=doi,
        external_id=doi,
        publication_date=published,
        status=ArticleStatus.PREPRINT,
    ))
