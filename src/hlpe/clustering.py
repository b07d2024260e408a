"""
Error Pattern Clustering - Group incorrect answers with k-means.

Each incorrect answer becomes a 2-D point:

- normalized time: time taken on the exam / per-question time budget
- difficulty: 0.3 if tagged hard + 0.2 if case-based + 0.1 if not a plain MCQ

Lloyd's algorithm groups the points into three clusters, which are then
named by the time coordinate of their centroid, fastest first:
"Silly Mistake", "Knowledge Gap", "Conceptual". The naming is a fixed
heuristic; it is not derived from what ends up inside each cluster.

Centroid seeding is random. Pass a seeded ``numpy.random.Generator`` (or a
seed) for reproducible labels; counts on well separated data are stable
either way.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger

from src.hlpe.models import PLAIN_QUESTION_TYPE, AnalysisSnapshot, AttemptItem, ExamAttempt

CLUSTER_NAMES = ("Silly Mistake", "Knowledge Gap", "Conceptual")

DEFAULT_TIME_BUDGET = 60.0  # seconds per question when the exam config is unusable
DEFAULT_TIME_TAKEN = 30.0  # seconds when the exam has no recorded time

HARD_WEIGHT = 0.3
CASE_BASED_WEIGHT = 0.2
NON_MCQ_WEIGHT = 0.1


@dataclass
class ClusterCount:
    """Number of incorrect answers assigned to a named cluster."""

    name: str
    count: int


@dataclass
class KMeansResult:
    """Raw output of Lloyd's algorithm."""

    centroids: np.ndarray
    assignments: np.ndarray
    iterations: int


def difficulty_score(item: AttemptItem) -> float:
    """Static difficulty from the question's tags and type."""
    question = item.question
    score = 0.0
    if question.is_hard:
        score += HARD_WEIGHT
    if question.is_case_based:
        score += CASE_BASED_WEIGHT
    if question.question_type != PLAIN_QUESTION_TYPE:
        score += NON_MCQ_WEIGHT
    return score


def normalized_time(exam: ExamAttempt) -> float:
    """Exam time taken relative to the per-question budget."""
    budget = exam.config.per_question_budget or DEFAULT_TIME_BUDGET
    time_taken = exam.time_taken if exam.time_taken else DEFAULT_TIME_TAKEN
    return time_taken / budget


def error_features(snapshot: AnalysisSnapshot) -> np.ndarray:
    """Feature matrix (n_errors x 2) for every incorrect answer in history."""
    rows = [
        (normalized_time(exam), difficulty_score(item))
        for exam in snapshot.exam_history
        for item in exam.incorrect_items
    ]
    return np.asarray(rows, dtype=float).reshape(-1, 2)


def kmeans(
    points: np.ndarray,
    k: int = 3,
    max_iterations: int = 20,
    rng: np.random.Generator | None = None,
) -> KMeansResult:
    """
    Lloyd's k-means.

    Centroids are seeded by sampling ``k`` distinct input points. Iteration
    stops when no assignment changes or after ``max_iterations``. A centroid
    that loses all its points is re-seeded from a random input point.

    Args:
        points: (n, d) array with n >= k
        k: Number of clusters
        max_iterations: Iteration cap
        rng: Random generator (a fresh unseeded one if None)
    """
    rng = rng or np.random.default_rng()
    n = len(points)
    if n < k:
        raise ValueError(f"Need at least {k} points for {k} clusters, got {n}")

    centroids = points[rng.choice(n, size=k, replace=False)].copy()
    assignments = np.full(n, -1, dtype=int)
    iterations = 0

    for iterations in range(1, max_iterations + 1):
        # Assign points to nearest centroid (first centroid wins ties)
        distances = np.linalg.norm(points[:, None, :] - centroids[None, :, :], axis=2)
        new_assignments = distances.argmin(axis=1)
        changed = not np.array_equal(new_assignments, assignments)
        assignments = new_assignments

        # Recalculate centroids
        for cluster in range(k):
            members = points[assignments == cluster]
            if len(members):
                centroids[cluster] = members.mean(axis=0)
            else:
                centroids[cluster] = points[rng.integers(n)]

        if not changed:
            break

    return KMeansResult(centroids=centroids, assignments=assignments, iterations=iterations)


def label_clusters(result: KMeansResult) -> list[ClusterCount]:
    """Name clusters by ascending centroid time and count their members."""
    order = np.argsort(result.centroids[:, 0], kind="stable")
    counts = np.bincount(result.assignments, minlength=len(result.centroids))
    return [
        ClusterCount(name=name, count=int(counts[cluster]))
        for name, cluster in zip(CLUSTER_NAMES, order)
    ]


def cluster_errors(
    snapshot: AnalysisSnapshot,
    max_iterations: int = 20,
    rng: np.random.Generator | int | None = None,
) -> list[ClusterCount] | None:
    """
    Cluster every incorrect answer in the exam history.

    Returns:
        One ClusterCount per name in CLUSTER_NAMES, or None when there are
        fewer incorrect answers than clusters.
    """
    points = error_features(snapshot)
    if len(points) < len(CLUSTER_NAMES):
        logger.debug("Clustering skipped: only {} incorrect answers", len(points))
        return None

    if not isinstance(rng, np.random.Generator):
        rng = np.random.default_rng(rng)

    result = kmeans(points, k=len(CLUSTER_NAMES), max_iterations=max_iterations, rng=rng)
    clusters = label_clusters(result)
    logger.debug(
        "Clustered {} errors in {} iterations: {}",
        len(points),
        result.iterations,
        {c.name: c.count for c in clusters},
    )
    return clusters
