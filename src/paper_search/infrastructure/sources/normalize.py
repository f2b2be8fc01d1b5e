"""
Text normalization and lexical tagging shared by all source adapters.

Every adapter funnels titles and abstracts through :func:`clean_text` and
derives platform tags/categories from static keyword tables, so the same
paper gets the same labels regardless of where it was found.
"""

from __future__ import annotations

import html
import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"[a-z][a-z0-9-]+")

# Research topics recognised as tags (matched as case-insensitive substrings).
TAG_TAXONOMY: tuple[str, ...] = (
    "machine learning",
    "deep learning",
    "neural networks",
    "artificial intelligence",
    "computer vision",
    "natural language processing",
    "reinforcement learning",
    "biomedical",
    "healthcare",
    "medical imaging",
    "bioinformatics",
    "signal processing",
    "data analysis",
    "algorithm",
    "optimization",
    "crispr",
    "gene editing",
    "genomics",
    "immunotherapy",
    "clinical trial",
    "brain-computer interface",
    "neuroimaging",
    "drug discovery",
    "stem cell",
)

MAX_TAGS = 5
MAX_KEYWORDS = 10

STOP_WORDS = frozenset({
    "a", "about", "above", "after", "again", "against", "also", "among", "an",
    "and", "are", "based", "been", "being", "between", "both", "but", "can",
    "could", "does", "during", "each", "either", "from", "further", "have",
    "having", "here", "into", "more", "most", "much", "must", "other", "over",
    "paper", "propose", "proposed", "results", "same", "show", "shows", "should",
    "such", "than", "that", "their", "them", "then", "there", "these", "they",
    "this", "those", "through", "under", "using", "very", "were", "what", "when",
    "where", "which", "while", "will", "with", "within", "without", "would",
    "study", "studies", "approach", "method", "methods",
})


def clean_text(text: str | None) -> str:
    """Strip HTML tags, unescape entities and collapse whitespace."""
    if not text:
        return ""
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def derive_tags(
    text: str,
    default: str,
    taxonomy: Sequence[str] = TAG_TAXONOMY,
    limit: int = MAX_TAGS,
) -> list[str]:
    """Tags from ``taxonomy`` found in ``text``; ``[default]`` when none match."""
    lowered = text.lower()
    tags = [tag for tag in taxonomy if tag in lowered][:limit]
    return tags or [default]


def categorize(
    text: str,
    table: Mapping[str, Iterable[str]],
    default: str,
) -> list[str]:
    """Platform categories whose keyword list has a hit in ``text``."""
    lowered = text.lower()
    categories = [
        category
        for category, keywords in table.items()
        if any(keyword in lowered for keyword in keywords)
    ]
    return categories or [default]


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Most frequent words longer than 3 characters, stop words excluded."""
    words = [
        w for w in _WORD_RE.findall(text.lower())
        if len(w) > 3 and w not in STOP_WORDS
    ]
    return [word for word, _ in Counter(words).most_common(limit)]


def dedupe(items: Iterable[str]) -> list[str]:
    """Drop empty and repeated strings, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result
