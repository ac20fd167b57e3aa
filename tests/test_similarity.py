"""
Tests for lexical similarity scoring.
"""

import pytest

from newswatch.similarity import (
    SimilarityScores,
    content_similarity,
    headline_similarity,
    jaccard,
    overlap,
    score_pair,
    tokenize,
)


class TestTokenize:

    def test_currency_and_magnitude_collapse(self):
        assert tokenize("$300M") == {"300"}
        assert tokenize("raises €40k") == {"raises", "40"}

    def test_decimal_amounts_contribute_nothing(self):
        assert tokenize("$1.5B") == set()
        assert tokenize("valued at $1.5B") == {"valued"}

    def test_magnitude_brings_amounts_together(self):
        assert "300" in tokenize("Black Forest Labs raises $300M")
        assert "300" in tokenize("Black Forest Labs secures 300 million")

    def test_short_words_dropped_but_short_identifiers_kept(self):
        tokens = tokenize("AI is on a roll: GPT-4o and o3 ship")
        assert "ai" not in tokens
        assert "is" not in tokens
        assert "4o" in tokens
        assert "o3" in tokens
        assert "gpt" in tokens
        assert "roll" in tokens

    def test_splits_on_punctuation(self):
        assert tokenize("open-source, self-hosted!") == {"open", "source", "self", "hosted"}

    def test_empty(self):
        assert tokenize("") == set()
        assert tokenize(None) == set()


class TestMetrics:

    def test_jaccard(self):
        # {apple, banana, cherry} vs {apple, banana, durian}: 2 / 4
        assert jaccard("apple banana cherry", "apple banana durian") == pytest.approx(0.5)

    def test_overlap_subset_scores_one(self):
        assert overlap("openai releases model", "openai releases model today for developers") == 1.0

    def test_empty_input_scores_zero(self):
        assert jaccard("", "anything here") == 0.0
        assert overlap("anything here", None) == 0.0
        assert headline_similarity("", "") == 0.0

    def test_headline_similarity_takes_max(self):
        h1 = "Black Forest Labs raises $300M Series B"
        h2 = "Generative AI startup Black Forest Labs secures $300 million"
        assert headline_similarity(h1, h2) == pytest.approx(max(jaccard(h1, h2), overlap(h1, h2)))
        # 4 shared of 6 tokens in the shorter headline
        assert headline_similarity(h1, h2) == pytest.approx(4 / 6)

    def test_identical_headlines(self):
        assert headline_similarity("Nvidia beats earnings", "Nvidia beats earnings") == 1.0


class TestContentSimilarity:

    def test_only_prefix_compared(self):
        prefix = "word " * 50  # 250 chars
        story1 = {'content': prefix + "alpha beta gamma"}
        story2 = {'content': prefix + "delta epsilon zeta"}
        assert content_similarity(story1, story2, prefix_chars=200) == 1.0

    def test_falls_back_to_summary(self):
        story1 = {'content': '', 'summary': 'Acme acquires Widget Corp'}
        story2 = {'summary': 'Acme acquires Widget Corp'}
        assert content_similarity(story1, story2) == 1.0

    def test_score_pair(self):
        story1 = {'headline': 'Acme acquires Widget Corp', 'content': 'Acme buys Widget for $2B'}
        story2 = {'headline': 'Acme acquires Widget Corp', 'content': 'Unrelated body text here'}
        scores = score_pair(story1, story2)
        assert scores.headline == 1.0
        assert scores.content < 0.2


class TestSimilarityScores:

    def test_combined_and_strongest(self):
        scores = SimilarityScores(headline=0.6, content=0.2)
        assert scores.combined == pytest.approx(0.4)
        assert scores.strongest == 0.6
