"""
Tests for text cleaning and lexical tagging shared by the adapters.
"""

from __future__ import annotations

from paper_search.infrastructure.sources.normalize import (
    categorize,
    clean_text,
    dedupe,
    derive_tags,
    extract_keywords,
)


class TestCleanText:
    def test_strips_markup_and_entities(self):
        assert clean_text("<i>In vivo</i>  editing &amp; delivery\n") == "In vivo editing & delivery"

    def test_empty(self):
        assert clean_text(None) == ""
        assert clean_text("") == ""


class TestTagging:
    def test_derive_tags_matches_taxonomy(self):
        tags = derive_tags("Deep learning for medical imaging with CRISPR screens", "healthcare")

        assert tags == ["deep learning", "medical imaging", "crispr"]

    def test_derive_tags_default(self):
        assert derive_tags("Pottery glaze chemistry", "healthcare") == ["healthcare"]

    def test_derive_tags_limit(self):
        assert derive_tags("algorithm optimization genomics", "x", limit=2) == ["algorithm", "optimization"]

    def test_categorize(self):
        table = {"neuroscience": ("brain", "neuron"), "genetics": ("gene",)}

        assert categorize("Brain activity", table, "other") == ["neuroscience"]
        assert categorize("Gene therapy for neuron loss", table, "other") == ["neuroscience", "genetics"]
        assert categorize("Rocks", table, "other") == ["other"]


class TestKeywords:
    def test_frequency_order(self):
        text = "Neural decoding of neural signals using decoding models"

        assert extract_keywords(text) == ["neural", "decoding", "signals", "models"]

    def test_limit_and_stop_words(self):
        assert extract_keywords("This study uses methods with cells", limit=1) == ["uses"]


class TestDedupe:
    def test_keeps_first_seen(self):
        assert dedupe(["ai", "", "ml", "ai", "bio"]) == ["ai", "ml", "bio"]
