"""
Study Plan Generation (greedy weighted ranking).

Ranks subjects by

    priority = error_rate * syllabus_weight - practice_share

where practice_share is the subject's attempted-question count relative to
the most practiced subject. Subjects that are heavily practiced and rarely
missed sink to the bottom; the top few make up the plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from loguru import logger

from src.hlpe.models import AnalysisSnapshot

DEFAULT_WEIGHT = 0.05
PLAN_SIZE = 5
PRIORITY_FLOOR = -1.0


@dataclass
class SubjectStats:
    """Per-subject practice counts."""

    subject: str
    attempted: int = 0
    errors: int = 0

    @property
    def error_rate(self) -> float:
        return self.errors / self.attempted if self.attempted else 0.0


@dataclass
class StudyRecommendation:
    """A subject and its study priority."""

    subject: str
    priority: float


def collect_subject_stats(snapshot: AnalysisSnapshot) -> dict[str, SubjectStats]:
    """Aggregate attempted/incorrect counts per batch subject."""
    stats: dict[str, SubjectStats] = {}
    for batch in snapshot.batches:
        entry = stats.setdefault(batch.subject, SubjectStats(subject=batch.subject))
        for question in batch.questions:
            if not question.is_attempted:
                continue
            entry.attempted += 1
            if question.last_attempt_correct is False:
                entry.errors += 1
    return stats


def generate_study_plan(
    snapshot: AnalysisSnapshot,
    syllabus_weights: Mapping[str, float] | None = None,
    default_weight: float = DEFAULT_WEIGHT,
    limit: int = PLAN_SIZE,
) -> list[StudyRecommendation]:
    """
    Rank subjects for study.

    Args:
        snapshot: Current analysis snapshot
        syllabus_weights: Subject -> exam weight; unknown or zero-weight subjects get ``default_weight``
        limit: Maximum recommendations returned

    Returns:
        Recommendations sorted by descending priority
    """
    syllabus_weights = syllabus_weights or {}
    stats = collect_subject_stats(snapshot)
    max_practice = max((s.attempted for s in stats.values()), default=0) or 1

    recommendations = []
    for entry in stats.values():
        weight = syllabus_weights.get(entry.subject) or default_weight
        practice_share = entry.attempted / max_practice
        priority = entry.error_rate * weight - practice_share
        if priority > PRIORITY_FLOOR:
            recommendations.append(StudyRecommendation(subject=entry.subject, priority=priority))

    recommendations.sort(key=lambda r: r.priority, reverse=True)
    logger.debug("Study plan: {} candidate subjects", len(recommendations))
    return recommendations[:limit]
