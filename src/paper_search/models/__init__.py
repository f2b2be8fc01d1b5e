"""Data models shared by every layer."""

from .article import (
    Article,
    ArticleMetrics,
    ArticleSource,
    ArticleStatus,
    Author,
    SourceQuery,
    SourceType,
    normalize_doi,
    normalize_query,
    normalize_title,
)

__all__ = [
    "Article",
    "ArticleMetrics",
    "ArticleSource",
    "ArticleStatus",
    "Author",
    "SourceQuery",
    "SourceType",
    "normalize_doi",
    "normalize_query",
    "normalize_title",
]
