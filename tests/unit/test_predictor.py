"""
Unit tests for score prediction.
"""

import pytest

from src.hlpe.models import AnalysisSnapshot
from src.hlpe.predictor import predict_score


class TestPredictScore:
    def test_blend(self, sample_snapshot):
        # accuracy 1/2, coverage 0/2, pace 1 - (120 s / 2) / 120 s
        assert predict_score(sample_snapshot) == pytest.approx(100 * (0.6 * 0.5 + 0.3 * 0.0 + 0.1 * 0.5))

    def test_coverage_counts_attempted_questions(self, make_batch, make_question, make_exam):
        q1 = make_question("q1", lastAttemptCorrect=True)
        q2 = make_question("q2", lastAttemptCorrect=False)
        q3 = make_question("q3")
        snapshot = AnalysisSnapshot.from_payload({
            "batches": [make_batch(questions=[q1, q2, q3, make_question("q4")])],
            "examHistory": [make_exam(results=[(q1, True), (q2, True)], timeTaken=0)],
        })
        assert predict_score(snapshot) == pytest.approx(100 * (0.6 + 0.3 * 0.5 + 0.1))

    def test_clamped_at_zero(self, make_batch, make_exam, make_question):
        q1 = make_question("q1")
        snapshot = AnalysisSnapshot.from_payload({
            "batches": [make_batch(questions=[q1])],
            "examHistory": [make_exam(results=[(q1, False)], timeTaken=100_000)],
        })
        assert predict_score(snapshot) == 0.0

    def test_unusable_budget_drops_pace(self, make_batch, make_exam, make_question):
        q1 = make_question("q1")
        snapshot = AnalysisSnapshot.from_payload({
            "batches": [make_batch(questions=[q1])],
            "examHistory": [make_exam(results=[(q1, True)], config={})],
        })
        assert predict_score(snapshot) == pytest.approx(60.0)

    def test_no_history(self, make_batch):
        assert predict_score(AnalysisSnapshot.from_payload({"batches": [make_batch()]})) is None

    def test_zero_questions(self, make_exam):
        snapshot = AnalysisSnapshot.from_payload({"examHistory": [make_exam(results=[])]})
        assert predict_score(snapshot) is None
