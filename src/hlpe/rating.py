"""
Elo Rating Updater.

Treats every answered question as a match between the learner and the
question: a correct answer is a win for the learner, an incorrect answer a
win for the question. Ratings move by K times the surprise of the result.

Within one exam the updates are sequential: each question is rated against
the learner rating produced by the previous question, not the rating the
exam started with.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from src.hlpe.models import AnalysisSnapshot, QuestionPatch, UserMetricsPatch, round_half_up

K_FACTOR = 32.0
DEFAULT_RATING = 1000
RATING_SCALE = 400.0


@dataclass
class EloConfig:
    """Configuration for Elo updates."""

    k_factor: float = K_FACTOR
    default_rating: int = DEFAULT_RATING


@dataclass
class RatingResult:
    """Patches produced by one Elo pass over the latest exam."""

    question_patches: list[QuestionPatch] = field(default_factory=list)
    user_patch: UserMetricsPatch = field(default_factory=UserMetricsPatch)


def expected_score(rating: float, opponent_rating: float) -> float:
    """Probability that ``rating`` beats ``opponent_rating``."""
    return 1.0 / (1.0 + 10 ** ((opponent_rating - rating) / RATING_SCALE))


def rate_exchange(
    user_rating: float,
    question_rating: float,
    is_correct: bool,
    k_factor: float = K_FACTOR,
) -> tuple[float, float]:
    """
    Update both ratings after one answer.

    Returns:
        (new_user_rating, new_question_rating), unrounded
    """
    actual_user = 1.0 if is_correct else 0.0
    expected_user = expected_score(user_rating, question_rating)
    expected_question = expected_score(question_rating, user_rating)

    new_user = user_rating + k_factor * (actual_user - expected_user)
    new_question = question_rating + k_factor * ((1.0 - actual_user) - expected_question)
    return new_user, new_question


def update_ratings(snapshot: AnalysisSnapshot, config: EloConfig | None = None) -> RatingResult:
    """
    Rate the most recent exam in ``snapshot``.

    Items whose question is no longer in the bank are skipped. A question
    answered twice is rated from its own previous result. With no exam
    history the result is empty.
    """
    config = config or EloConfig()
    exam = snapshot.latest_exam
    if exam is None:
        return RatingResult()

    user_rating = snapshot.user_metrics.user_elo or config.default_rating
    question_ratings: dict[str, int] = {}
    patches: dict[str, QuestionPatch] = {}

    for item in exam.items:
        question = snapshot.find_question(item.question.id)
        if question is None:
            logger.debug("Elo: question {} no longer in bank, skipping", item.question.id)
            continue

        question_rating = question_ratings.get(question.id) or question.elo or config.default_rating
        user_rating, new_question_rating = rate_exchange(
            user_rating, question_rating, item.is_correct, config.k_factor
        )
        question_ratings[question.id] = round_half_up(new_question_rating)
        patches[question.id] = QuestionPatch(
            id=question.id, batch_id=question.batch_id, elo=question_ratings[question.id]
        )

    user_patch = UserMetricsPatch(user_elo=round_half_up(user_rating))
    logger.debug(
        "Elo: rated {} questions from exam {}, user rating -> {}",
        len(patches),
        exam.id,
        user_patch.user_elo,
    )
    return RatingResult(question_patches=list(patches.values()), user_patch=user_patch)
