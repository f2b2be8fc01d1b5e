"""
External paper sources.

Every adapter implements ``search(query, max_results)`` and returns
normalized :class:`~paper_search.models.article.Article` objects; upstream
failures are logged and yield an empty list.
"""

from .arxiv import ArXivAdapter
from .base import BaseSourceAdapter, ParseOutcome
from .biorxiv import BioRxivAdapter
from .pubmed import PubMedAdapter

__all__ = [
    "ArXivAdapter",
    "BaseSourceAdapter",
    "BioRxivAdapter",
    "ParseOutcome",
    "PubMedAdapter",
]
