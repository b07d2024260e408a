"""
Progress Tracking (exponential moving average of session scores).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from src.hlpe.models import AnalysisSnapshot

ALPHA = 0.2

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ScoreTrendPoint:
    """One session on the trend line."""

    date: str
    score: float
    ema: float


def calculate_score_trend(snapshot: AnalysisSnapshot, alpha: float = ALPHA) -> list[ScoreTrendPoint] | None:
    """
    Smooth exam and study session scores into a trend line.

    Sessions are ordered oldest first; the EMA is seeded with the first
    score and each point reports it rounded to 2 decimals.

    Returns:
        One point per session, or None with fewer than two sessions
    """
    sessions = [*snapshot.exam_history, *snapshot.study_history]
    if len(sessions) < 2:
        return None

    # Undated sessions sort first; sorted() keeps their relative order
    sessions = sorted(sessions, key=lambda s: s.created_at or _EPOCH)

    ema = sessions[0].score
    trend = []
    for index, session in enumerate(sessions):
        if index:
            ema = alpha * session.score + (1 - alpha) * ema
        trend.append(
            ScoreTrendPoint(
                date=session.created_at.date().isoformat() if session.created_at else "",
                score=session.score,
                ema=round(ema, 2),
            )
        )
    return trend
