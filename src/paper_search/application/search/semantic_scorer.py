"""
SemanticScorer - lexical query expansion and re-ranking

Deterministic, table-driven "semantic" scoring:
1. Query expansion from a synonym table and a concept table
2. Weighted substring matching (title 3, abstract 2, keyword 1)
3. Stable re-sort with trending score as the tie-breaker for close scores

Also provides search suggestions and concept-overlap "similar articles".

Example:
    >>> scorer = SemanticScorer()
    >>> sorted(scorer.expand_query("cancer"))[:3]
    ['cancer', 'carcinoma', 'malignant']
    >>> ranked = scorer.enhance_search_results("brain imaging", articles)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import cmp_to_key
from types import MappingProxyType

from paper_search.models.article import Article

logger = logging.getLogger(__name__)


# =============================================================================
# Static tables
# =============================================================================

SYNONYM_MAP: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "ai": ("artificial intelligence", "machine learning", "deep learning", "neural networks"),
    "brain": ("neural", "cerebral", "neurological", "cognitive", "cortical"),
    "gene": ("genetic", "genomic", "dna", "rna", "hereditary"),
    "drug": ("pharmaceutical", "medicine", "therapy", "treatment", "medication"),
    "cancer": ("tumor", "oncology", "malignant", "carcinoma", "neoplasm"),
    "heart": ("cardiac", "cardiovascular", "coronary", "myocardial"),
    "diabetes": ("diabetic", "glucose", "insulin", "glycemic"),
    "covid": ("coronavirus", "sars-cov-2", "pandemic", "viral infection"),
    "alzheimer": ("dementia", "cognitive decline", "neurodegenerative"),
    "stem cell": ("regenerative medicine", "cell therapy", "tissue engineering"),
})

CONCEPT_MAP: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "neuroscience": ("brain", "neural", "cognitive", "neuron", "synapse", "cortex"),
    "biotechnology": ("gene", "protein", "enzyme", "bioengineering", "synthetic biology"),
    "medical imaging": ("mri", "ct scan", "ultrasound", "x-ray", "pet scan"),
    "clinical trial": ("randomized", "placebo", "double-blind", "efficacy", "safety"),
    "machine learning": ("algorithm", "neural network", "deep learning", "classification"),
})

TITLE_WEIGHT = 3
ABSTRACT_WEIGHT = 2
KEYWORD_WEIGHT = 1

TIE_THRESHOLD = 0.1
CATEGORY_OVERLAP_WEIGHT = 0.3
MIN_SIMILARITY = 0.1
MAX_SUGGESTIONS = 8
MIN_SUGGESTION_LENGTH = 2


@dataclass(frozen=True, slots=True)
class ConceptMatch:
    """A concept found in a text and how strongly it is represented."""
    concept: str
    relevance: float
    matching_terms: tuple[str, ...]


class SemanticScorer:
    """
    Lexical semantic scorer over static synonym/concept tables.

    The tables are injectable for tests; defaults are module constants and
    are never mutated.
    """

    def __init__(
        self,
        synonyms: Mapping[str, Sequence[str]] = SYNONYM_MAP,
        concepts: Mapping[str, Sequence[str]] = CONCEPT_MAP,
    ) -> None:
        self._synonyms = synonyms
        self._concepts = concepts

    # =========================================================================
    # Query expansion and scoring
    # =========================================================================

    def expand_query(self, query: str) -> set[str]:
        """
        Expand ``query`` with table values whose key occurs in it.

        The original query is always a member of the result.
        """
        expanded = {query}
        lowered = query.lower()
        for table in (self._synonyms, self._concepts):
            for key, values in table.items():
                if key in lowered:
                    expanded.update(values)
        return expanded

    def calculate_similarity_score(self, query: str, article: Article) -> float:
        """
        Weighted match score of ``article`` against the expanded query.

        Each expanded term found in the title adds 3, in the abstract 2, in
        any keyword 1. With ``n`` expanded terms of which ``m`` matched at
        all, the score is ``weighted_sum * (m / n) / n``.
        """
        if not query:
            return 0.0
        terms = {t.lower() for t in self.expand_query(query)}
        title = article.title.lower()
        abstract = article.abstract.lower()
        keywords = [k.lower() for k in article.keywords]

        weighted = 0
        matched = 0
        for term in terms:
            hit = False
            if term in title:
                weighted += TITLE_WEIGHT
                hit = True
            if term in abstract:
                weighted += ABSTRACT_WEIGHT
                hit = True
            if any(term in keyword for keyword in keywords):
                weighted += KEYWORD_WEIGHT
                hit = True
            matched += hit

        total = len(terms)
        match_ratio = matched / total
        return (weighted * match_ratio) / total

    def enhance_search_results(self, query: str, articles: Sequence[Article]) -> list[Article]:
        """
        Score and re-sort ``articles`` for ``query``.

        Returns copies carrying ``semantic_score``, highest first. Scores
        closer than 0.1 are ordered by ``trending_score`` instead; equal
        keys keep their input order.
        """
        if not query or not articles:
            return list(articles)

        scored = [
            article.with_scores(semantic_score=self.calculate_similarity_score(query, article))
            for article in articles
        ]
        return sorted(scored, key=cmp_to_key(_compare_ranked))

    # =========================================================================
    # Suggestions
    # =========================================================================

    def generate_search_suggestions(self, partial: str) -> list[str]:
        """Up to 8 table keys/values related to ``partial`` (both directions)."""
        if not partial or len(partial.strip()) < MIN_SUGGESTION_LENGTH:
            return []
        needle = partial.strip().lower()
        suggestions: list[str] = []

        def add(term: str) -> None:
            if term not in suggestions:
                suggestions.append(term)

        for key, synonyms in self._synonyms.items():
            if key in needle or needle in key:
                add(key)
                for synonym in synonyms:
                    if synonym in needle or needle in synonym:
                        add(synonym)

        for concept, related in self._concepts.items():
            if concept in needle or needle in concept:
                add(concept)
                for term in related:
                    if needle in term or term in needle:
                        add(term)

        # Values reached directly, without their key matching
        for table in (self._synonyms, self._concepts):
            for values in table.values():
                for value in values:
                    if needle in value or value in needle:
                        add(value)

        return suggestions[:MAX_SUGGESTIONS]

    # =========================================================================
    # Concepts and similar articles
    # =========================================================================

    def extract_concepts(self, text: str) -> list[ConceptMatch]:
        """Concepts present in ``text``, most relevant first."""
        if not text:
            return []
        lowered = text.lower()
        matches: list[ConceptMatch] = []
        for concept, related in self._concepts.items():
            found = tuple(term for term in related if term in lowered)
            if found:
                matches.append(ConceptMatch(
                    concept=concept,
                    relevance=len(found) / len(related),
                    matching_terms=found,
                ))
        return sorted(matches, key=lambda m: m.relevance, reverse=True)

    def find_similar_articles(
        self,
        target: Article,
        candidates: Sequence[Article],
        limit: int = 5,
    ) -> list[Article]:
        """
        Candidates most similar to ``target`` by concept and category overlap.

        score = sum over shared concepts of min(relevance) + 0.3 per shared
        category; only scores above 0.1 are kept.
        """
        if not candidates or limit <= 0:
            return []

        target_concepts = {
            m.concept: m.relevance
            for m in self.extract_concepts(f"{target.title} {target.abstract}")
        }
        target_categories = set(target.categories)

        scored: list[Article] = []
        for candidate in candidates:
            if candidate.id == target.id:
                continue
            concept_score = 0.0
            for match in self.extract_concepts(f"{candidate.title} {candidate.abstract}"):
                if match.concept in target_concepts:
                    concept_score += min(target_concepts[match.concept], match.relevance)
            shared_categories = len(target_categories.intersection(candidate.categories))
            score = concept_score + shared_categories * CATEGORY_OVERLAP_WEIGHT
            if score > MIN_SIMILARITY:
                scored.append(candidate.with_scores(similarity_score=score))

        scored.sort(key=lambda a: a.similarity_score or 0.0, reverse=True)
        return scored[:limit]


def _compare_ranked(a: Article, b: Article) -> int:
    """Semantic score descending; trending score descending when scores are close."""
    sa = a.semantic_score or 0.0
    sb = b.semantic_score or 0.0
    if abs(sa - sb) < TIE_THRESHOLD:
        return (b.trending_score > a.trending_score) - (b.trending_score < a.trending_score)
    return -1 if sa > sb else 1
