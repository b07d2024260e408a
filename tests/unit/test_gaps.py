"""
Unit tests for TF-IDF knowledge-gap scoring.
"""

import math

import numpy as np
import pytest

from src.hlpe.gaps import find_knowledge_gaps, term_weights
from src.hlpe.models import AnalysisSnapshot


@pytest.fixture
def corpus(make_batch, make_question):
    """Snapshot whose question texts are given as (text, attempted) pairs."""

    def _make(docs):
        questions = [
            make_question(f"q{i}", question=text, lastAttemptCorrect=True if attempted else None)
            for i, (text, attempted) in enumerate(docs)
        ]
        return AnalysisSnapshot.from_payload({"batches": [make_batch(questions=questions)]})

    return _make


class TestTermWeights:
    def test_textbook_tfidf(self):
        terms, corpus_avg, user_avg = term_weights(
            ["alpha alpha beta", "beta"],
            np.array([True, False]),
        )
        weights = dict(zip(terms, corpus_avg))
        # alpha: tf 2/3 in doc 0, idf ln(2/1); beta is in every doc so idf 0
        assert weights["alpha"] == pytest.approx((2 / 3) * math.log(2) / 2)
        assert weights["beta"] == pytest.approx(0.0)
        assert dict(zip(terms, user_avg))["alpha"] == pytest.approx((2 / 3) * math.log(2))

    def test_tokens_are_lowercased_words(self):
        terms, _, _ = term_weights(["Anemia, iron-deficiency!"], np.array([False]))
        assert list(terms) == ["anemia", "deficiency", "iron"]

    def test_no_tokens(self):
        assert term_weights([" ", "?!"], np.array([False, False])) is None


class TestFindKnowledgeGaps:
    def test_unpracticed_term_is_a_gap(self, corpus):
        """A term absent from every attempted question is reported."""
        snapshot = corpus([
            ("alpha", True),
            ("alpha", True),
            ("beta", False),
            ("beta", False),
        ])

        gaps = find_knowledge_gaps(snapshot)

        assert [g.topic for g in gaps] == ["beta"]
        assert gaps[0].gap_score == pytest.approx(math.log(2) / 2)

    def test_term_in_every_document_has_no_weight(self, corpus):
        snapshot = corpus([("common alpha", True), ("common beta", False)])

        topics = [g.topic for g in find_knowledge_gaps(snapshot)]

        assert "common" not in topics
        assert topics == ["beta"]

    def test_nothing_attempted_flags_everything(self, corpus):
        snapshot = corpus([("renal", False), ("cardiac", False), ("hepatic", False)])
        gaps = find_knowledge_gaps(snapshot)
        assert sorted(g.topic for g in gaps) == ["cardiac", "hepatic", "renal"]

    def test_top_five_descending(self, corpus):
        # Shorter documents give their term a larger tf
        docs = [(" ".join([f"t{i}"] + ["pad"] * i), False) for i in range(8)] + [("pad", True)]
        gaps = find_knowledge_gaps(corpus(docs))

        assert len(gaps) == 5
        scores = [g.gap_score for g in gaps]
        assert scores == sorted(scores, reverse=True)
        assert gaps[0].topic == "t0"

    def test_explanation_counts(self, make_batch, make_question):
        snapshot = AnalysisSnapshot.from_payload({
            "batches": [make_batch(questions=[
                make_question("q1", question="", explanation="thyroid", lastAttemptCorrect=True),
                make_question("q2", question="", explanation="adrenal"),
            ])],
        })
        assert [g.topic for g in find_knowledge_gaps(snapshot)] == ["adrenal"]

    def test_empty_bank(self):
        assert find_knowledge_gaps(AnalysisSnapshot()) is None

    def test_bank_without_tokens(self, corpus):
        assert find_knowledge_gaps(corpus([("", False), ("...", True)])) is None
