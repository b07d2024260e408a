"""
Score Prediction.

Linear blend of three signals, each in [0, 1]:

- accuracy: correct answers / questions across all exams (weight 0.6)
- coverage: attempted questions / questions in the bank (weight 0.3)
- pace: 1 - average seconds per question / time budget (weight 0.1)

The time budget comes from the most recent exam's configuration.
"""

from __future__ import annotations

from src.hlpe.models import AnalysisSnapshot

ACCURACY_WEIGHT = 0.6
COVERAGE_WEIGHT = 0.3
PACE_WEIGHT = 0.1


def predict_score(snapshot: AnalysisSnapshot) -> float | None:
    """
    Predict the next exam score as a percentage.

    Returns:
        Score clamped to [0, 100], or None without usable exam history
    """
    history = snapshot.exam_history
    if not history:
        return None

    total_questions = sum(exam.total_questions for exam in history)
    if total_questions == 0:
        return None

    accuracy = sum(exam.correct_answers for exam in history) / total_questions
    avg_time = sum(exam.time_taken or 0.0 for exam in history) / total_questions

    budget = history[0].config.per_question_budget
    pace = 1 - avg_time / budget if budget else 0.0

    questions = snapshot.questions
    attempted = sum(1 for q in questions if q.is_attempted)
    coverage = attempted / len(questions) if questions else 0.0

    predicted = ACCURACY_WEIGHT * accuracy + COVERAGE_WEIGHT * coverage + PACE_WEIGHT * pace
    return max(0.0, min(100.0, predicted * 100))
