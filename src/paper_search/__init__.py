"""
Paper Search - research paper aggregation across PubMed, arXiv and bioRxiv

Fans a query out to the external sources (and an optional local store),
deduplicates and re-ranks the results and serves them over HTTP.

Usage:
    from paper_search import create_container, SearchOptions

    container = create_container()
    orchestrator = container.orchestrator()
    articles = await orchestrator.enhanced_search(
        "brain computer interface", SearchOptions(max_results=20)
    )

    for article in articles:
        print(f"{article.id}: {article.title}")
"""

from .application.search import SearchOptions, SearchOrchestrator
from .container import ApplicationContainer, create_container
from .core.config import Settings
from .models.article import Article

__version__ = "0.1.0"

__all__ = [
    "ApplicationContainer",
    "Article",
    "SearchOptions",
    "SearchOrchestrator",
    "Settings",
    "create_container",
]
