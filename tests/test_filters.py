"""
Tests for post-merge filtering, sorting, pagination and the in-memory local store.
"""

from __future__ import annotations

from datetime import date

import pytest

from paper_search.application.search.filters import (
    SearchFilters,
    SortField,
    SortOrder,
    apply_filters,
    article_origin,
    paginate,
    sort_articles,
)
from paper_search.application.search.local_store import InMemoryLocalStore, LocalSearchOptions
from paper_search.models.article import ArticleMetrics, ArticleSource, ArticleStatus, Author, SourceType


@pytest.fixture
def articles(make_article):
    return [
        make_article(
            id="pubmed_1",
            title="Brain imaging",
            categories=("neuroscience",),
            citation_count=50,
            view_count=10,
            trending_score=1.0,
            publication_date=date(2023, 5, 1),
            metrics=ArticleMetrics(impact_score=8.0),
        ),
        make_article(
            id="arxiv_2",
            title="Transformers for EEG",
            categories=("ai", "neuroscience"),
            authors=(Author("Alice Chen"),),
            citation_count=5,
            view_count=300,
            trending_score=9.0,
            publication_date=date(2024, 2, 1),
            status=ArticleStatus.PREPRINT,
            source=ArticleSource("arXiv", "", SourceType.PREPRINT),
        ),
        make_article(
            id="local_3",
            title="Clinic workflow",
            categories=("healthcare",),
            citation_count=0,
            publication_date=None,
            is_local=True,
            metrics=ArticleMetrics(impact_score=3.0),
        ),
    ]


def _ids(items):
    return [a.id for a in items]


class TestApplyFilters:
    def test_empty_filter_keeps_all(self, articles):
        assert apply_filters(articles, SearchFilters()) == articles

    def test_categories_any_match_case_insensitive(self, articles):
        assert _ids(apply_filters(articles, SearchFilters(categories=("NEUROSCIENCE",)))) == ["pubmed_1", "arxiv_2"]

    def test_all_category_is_ignored(self, articles):
        assert len(apply_filters(articles, SearchFilters(categories=("all",)))) == 3

    def test_author_substring(self, articles):
        assert _ids(apply_filters(articles, SearchFilters(authors=("chen",)))) == ["arxiv_2"]

    def test_sources_by_origin_or_name(self, articles):
        assert _ids(apply_filters(articles, SearchFilters(sources=("local",)))) == ["local_3"]
        assert _ids(apply_filters(articles, SearchFilters(sources=("arXiv",)))) == ["arxiv_2"]

    def test_statuses(self, articles):
        result = apply_filters(articles, SearchFilters(statuses=(ArticleStatus.PREPRINT,)))
        assert _ids(result) == ["arxiv_2"]

    def test_date_range_excludes_undated(self, articles):
        result = apply_filters(articles, SearchFilters(date_from=date(2023, 1, 1), date_to=date(2023, 12, 31)))
        assert _ids(result) == ["pubmed_1"]

    def test_citation_and_impact_bounds(self, articles):
        assert _ids(apply_filters(articles, SearchFilters(min_citations=5, max_citations=10))) == ["arxiv_2"]
        assert _ids(apply_filters(articles, SearchFilters(min_impact=5.0))) == ["pubmed_1"]
        assert _ids(apply_filters(articles, SearchFilters(max_impact=3.0))) == ["arxiv_2", "local_3"]

    def test_article_origin(self, articles):
        assert [article_origin(a) for a in articles] == ["pubmed", "arxiv", "local"]


class TestSorting:
    def test_relevance_keeps_order(self, articles):
        assert sort_articles(articles) == articles
        assert _ids(sort_articles(articles, SortField.RELEVANCE, SortOrder.ASC)) == ["local_3", "arxiv_2", "pubmed_1"]

    def test_date_undated_last(self, articles):
        assert _ids(sort_articles(articles, SortField.DATE)) == ["arxiv_2", "pubmed_1", "local_3"]
        assert _ids(sort_articles(articles, SortField.DATE, SortOrder.ASC)) == ["pubmed_1", "arxiv_2", "local_3"]

    @pytest.mark.parametrize(
        ("field", "expected"),
        [
            (SortField.CITATIONS, ["pubmed_1", "arxiv_2", "local_3"]),
            (SortField.VIEWS, ["arxiv_2", "pubmed_1", "local_3"]),
            (SortField.TRENDING, ["arxiv_2", "pubmed_1", "local_3"]),
        ],
    )
    def test_numeric_fields(self, articles, field, expected):
        assert _ids(sort_articles(articles, field)) == expected


class TestPaginate:
    def test_pages(self, articles):
        page = paginate(articles, page=1, limit=2)

        assert _ids(page.items) == ["pubmed_1", "arxiv_2"]
        assert page.total == 3
        assert page.has_more is True

        last = paginate(articles, page=2, limit=2)
        assert _ids(last.items) == ["local_3"]
        assert last.has_more is False

    def test_out_of_range(self, articles):
        page = paginate(articles, page=5, limit=2)

        assert page.items == []
        assert page.has_more is False

    def test_clamps_invalid_values(self, articles):
        page = paginate(articles, page=0, limit=0)

        assert page.page == 1
        assert page.limit == 1


class TestInMemoryLocalStore:
    async def test_full_text_search_scores_word_share(self, make_article):
        store = InMemoryLocalStore([
            make_article(id="local_1", title="Brain imaging atlas"),
            make_article(id="local_2", title="Brain surgery"),
            make_article(id="local_3", title="Kidney function"),
        ])

        hits = await store.full_text_search("brain imaging", LocalSearchOptions())

        assert _ids(hits) == ["local_1", "local_2"]
        assert hits[0].search_score == 1.0
        assert hits[1].search_score == 0.5
        assert all(a.is_local for a in hits)

    async def test_advanced_search_applies_filters(self, make_article):
        store = InMemoryLocalStore([
            make_article(id="local_1", categories=("ai",)),
            make_article(id="local_2", categories=("genetics",)),
        ])

        hits = await store.advanced_search(LocalSearchOptions(filters=SearchFilters(categories=("genetics",))))

        assert _ids(hits) == ["local_2"]

    async def test_limit_and_add(self, make_article):
        store = InMemoryLocalStore()
        for i in range(5):
            store.add(make_article(id=f"local_{i}", title=f"Topic {i}"))

        assert len(store) == 5
        assert len(await store.full_text_search("topic", LocalSearchOptions(limit=2))) == 2
