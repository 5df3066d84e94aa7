"""
Tests for Context Relevance Module
"""

import pytest

from support_mediator.relevance import ContextWeigher, WeightedContext, fold, tokenize
from support_mediator.vector_store import VectorMatch


@pytest.fixture
def weigher():
    return ContextWeigher(lexical_weight=0.3, language_weight=0.1)


class TestTokenize:
    """Tests for text folding and tokenisation."""

    def test_fold_strips_accents(self):
        assert fold("Política de Devolução") == "politica de devolucao"

    def test_stop_words_removed(self):
        assert tokenize("How do I change my email?") == frozenset({"change", "email"})

    def test_multilingual(self):
        assert "pagamento" in tokenize("Problema com o pagamento")
        assert "cuenta" in tokenize("necesito ayuda con mi cuenta")


class TestContextWeigher:
    """Tests for ContextWeigher.weight."""

    def test_negative_weights_rejected(self):
        with pytest.raises(ValueError):
            ContextWeigher(lexical_weight=-0.1)

    def test_overlap(self):
        terms = tokenize("payment failed card")
        assert ContextWeigher.overlap(terms, "Your card payment failed") == 1.0
        assert ContextWeigher.overlap(terms, "Card declined") == pytest.approx(1 / 3)
        assert ContextWeigher.overlap(frozenset(), "anything") == 0.0

    def test_lexical_overlap_breaks_equal_scores(self, weigher):
        """At equal retrieval score, more shared terms never ranks lower."""
        contexts = weigher.weight("payment failed", [
            {"text": "Shipping takes five days", "language": "en", "score": 0.8},
            {"text": "If your payment failed, retry with another card", "language": "en", "score": 0.8},
        ])

        assert contexts[0].text.startswith("If your payment failed")
        assert contexts[0].relevance == 1.0
        assert contexts[1].relevance == 0.0

    def test_weighted_score_formula(self, weigher):
        contexts = weigher.weight("reset password", [
            {"text": "To reset your password open settings", "language": "en", "score": 0.5},
        ], language="en")

        assert contexts[0].weighted_score == pytest.approx(0.5 + 0.3 * 1.0 + 0.1)

    def test_language_bonus(self, weigher):
        contexts = weigher.weight("reembolso", [
            {"text": "reembolso policy", "language": "en", "score": 0.7},
            {"text": "reembolso política", "language": "es", "score": 0.7},
        ], language="ES")

        assert contexts[0].language == "es"

    def test_no_language_no_bonus(self, weigher):
        contexts = weigher.weight("x", [{"text": "y", "language": "en", "score": 0.4}])
        assert contexts[0].weighted_score == pytest.approx(0.4)

    def test_ties_keep_original_order(self, weigher):
        contexts = weigher.weight("zzz", [
            {"text": "first", "score": 0.5},
            {"text": "second", "score": 0.5},
        ])
        assert [c.text for c in contexts] == ["first", "second"]

    def test_blank_and_duplicate_texts_dropped(self, weigher):
        contexts = weigher.weight("refund", [
            {"text": "   ", "score": 0.99},
            {"text": "Refund  within 30 days", "score": 0.9},
            {"text": "Refund within 30 days", "score": 0.5},
        ])

        assert len(contexts) == 1
        assert contexts[0].score == 0.9

    def test_min_score_filter(self):
        weigher = ContextWeigher(min_score=0.5)
        contexts = weigher.weight("x", [
            {"text": "keep", "score": 0.6},
            {"text": "drop", "score": 0.2},
        ])
        assert [c.text for c in contexts] == ["keep"]

    def test_accepts_vector_matches(self, weigher):
        matches = [VectorMatch(text="Account locked", language="en", source="faq.md", score=0.6)]

        contexts = weigher.weight("account locked", matches)

        assert contexts[0].source == "faq.md"
        assert contexts[0].relevance == 1.0


class TestFormatContexts:
    """Tests for prompt rendering."""

    def test_empty(self, weigher):
        assert weigher.format_contexts([]) == "No relevant context found."

    def test_numbered_blocks(self, weigher):
        contexts = [
            WeightedContext("Reset via settings", "en", "faq.md", 0.9, 0.5, 1.05),
            WeightedContext("Contact billing", None, None, 0.7, 0.0, 0.7),
        ]

        rendered = weigher.format_contexts(contexts)

        assert rendered == (
            "[1] Source: faq.md | Language: en | Relevance: 50%\nReset via settings"
            "\n\n---\n\n"
            "[2] Source: unknown | Relevance: 0%\nContact billing"
        )

    def test_max_length(self):
        weigher = ContextWeigher(max_context_length=300)
        contexts = [WeightedContext("x" * 250, "en", "a", 0.9, 0.0, 0.9) for _ in range(3)]

        rendered = weigher.format_contexts(contexts)

        assert len(rendered) <= 300 + len("\n\n---\n\n") + 3
        assert rendered.count("[") == 1

    def test_to_dict(self):
        context = WeightedContext("t", "pt", "s", 0.5, 0.25, 0.6)
        assert context.to_dict()["weightedScore"] == 0.6
