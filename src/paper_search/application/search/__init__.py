"""
Search application services.

- SearchOrchestrator: concurrent multi-source search
- SemanticScorer: query expansion and re-ranking
- merge_results: cross-source deduplication
- filters: post-merge filtering, sorting and pagination
"""

from .fallback import synthetic_articles
from .filters import Page, SearchFilters, SortField, SortOrder, apply_filters, paginate, sort_articles
from .local_store import InMemoryLocalStore, LocalSearchOptions, LocalStore
from .orchestrator import SearchOptions, SearchOrchestrator, SearchReport
from .result_merger import MergeStats, merge_results
from .semantic_scorer import ConceptMatch, SemanticScorer

__all__ = [
    "ConceptMatch",
    "InMemoryLocalStore",
    "LocalSearchOptions",
    "LocalStore",
    "MergeStats",
    "Page",
    "SearchFilters",
    "SearchOptions",
    "SearchOrchestrator",
    "SearchReport",
    "SemanticScorer",
    "SortField",
    "SortOrder",
    "apply_filters",
    "merge_results",
    "paginate",
    "sort_articles",
    "synthetic_articles",
]
