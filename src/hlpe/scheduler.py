"""
SM-2 Spaced Repetition Scheduler.

A pass/fail variant of SuperMemo 2 driven by exam outcomes rather than
self-graded recall:

- Correct: repetition level advances; intervals go 1 day, 6 days, then
  previous interval times the easiness factor. Easiness grows by 0.1.
- Incorrect: hard reset to level 1, a 1-day interval and the minimum
  easiness, whatever the question's history was.

Easiness never drops below 1.3.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from loguru import logger

from src.hlpe.models import AnalysisSnapshot, Question, QuestionPatch, format_timestamp, round_half_up

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    easiness_step: float = 0.1
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review


@dataclass(frozen=True)
class SrsState:
    """SM-2 state for a single question."""

    level: int = 0
    easiness: float = 2.5
    interval_days: int = 0

    @classmethod
    def of(cls, question: Question, config: SM2Config | None = None) -> SrsState:
        """Read a question's state, filling unset fields with defaults."""
        config = config or SM2Config()
        return cls(
            level=question.srs_level or 0,
            easiness=question.srs_easiness_factor or config.initial_easiness,
            interval_days=question.srs_interval or 0,
        )


def next_state(state: SrsState, is_correct: bool, config: SM2Config | None = None) -> SrsState:
    """
    Advance one question's schedule after an answer.

    Args:
        state: Current SM-2 state
        is_correct: Exam outcome for the question

    Returns:
        New SrsState (the input is not modified)
    """
    config = config or SM2Config()

    if is_correct:
        level = state.level + 1
        if level == 1:
            interval = config.first_interval
        elif level == 2:
            interval = config.second_interval
        else:
            interval = round_half_up(state.interval_days * state.easiness)
        easiness = state.easiness + config.easiness_step
    else:
        # Failed - reset to beginning
        level = 1
        interval = config.first_interval
        easiness = config.minimum_easiness

    easiness = max(config.minimum_easiness, easiness)
    return SrsState(level=level, easiness=easiness, interval_days=interval)


def schedule_latest_exam(
    snapshot: AnalysisSnapshot,
    now: datetime | None = None,
    config: SM2Config | None = None,
) -> list[QuestionPatch]:
    """
    Reschedule every question answered in the most recent exam.

    Question state is read from the bank in ``snapshot`` (not from the
    exam's embedded question copy), so callers should pass the snapshot
    produced after rating updates were applied. A question answered more
    than once moves through one transition per answer, and only its final
    state is patched.
    """
    config = config or SM2Config()
    exam = snapshot.latest_exam
    if exam is None:
        return []

    now = now or datetime.now(timezone.utc)
    states: dict[str, SrsState] = {}
    patches: dict[str, QuestionPatch] = {}

    for item in exam.items:
        question = snapshot.find_question(item.question.id)
        if question is None:
            logger.debug("SM-2: question {} no longer in bank, skipping", item.question.id)
            continue

        previous = states.get(question.id) or SrsState.of(question, config)
        state = states[question.id] = next_state(previous, item.is_correct, config)
        patches[question.id] = QuestionPatch(
            id=question.id,
            batch_id=question.batch_id,
            srs_level=state.level,
            srs_easiness_factor=state.easiness,
            srs_interval=state.interval_days,
            next_review_date=format_timestamp(now + timedelta(days=state.interval_days)),
            last_attempt_correct=item.is_correct,
        )

    logger.debug("SM-2: rescheduled {} questions from exam {}", len(patches), exam.id)
    return list(patches.values())
