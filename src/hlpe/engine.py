"""
Full Analysis Pass.

A pass is an explicit fold over snapshot versions:

    v0 --Elo patches--> v1 --SM-2 patches--> v2 --read-only analyses--> report

Each mutating step reads one immutable snapshot and returns patches; the
next version is produced by applying them. The read-only analyses all see
v2 and are independent of each other.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping

import numpy as np
from loguru import logger

from config import DEFAULT_SYLLABUS_WEIGHTS, Settings
from src.hlpe.clustering import cluster_errors
from src.hlpe.gaps import find_knowledge_gaps
from src.hlpe.messages import (
    AnalysisReport,
    DataUpdate,
    ErrorClusterEntry,
    KnowledgeGapEntry,
    ScoreTrendEntry,
    StudyPlanEntry,
)
from src.hlpe.models import AnalysisSnapshot, merge_patches
from src.hlpe.predictor import predict_score
from src.hlpe.prioritizer import generate_study_plan
from src.hlpe.rating import EloConfig, update_ratings
from src.hlpe.scheduler import SM2Config, schedule_latest_exam
from src.hlpe.trend import calculate_score_trend


@dataclass
class EngineConfig:
    """Tunables for one analysis pass."""

    elo: EloConfig = field(default_factory=EloConfig)
    srs: SM2Config = field(default_factory=SM2Config)
    cluster_max_iterations: int = 20
    cluster_seed: int | None = None
    syllabus_weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_SYLLABUS_WEIGHTS))
    default_syllabus_weight: float = 0.05
    study_plan_size: int = 5
    gap_min_corpus_weight: float = 0.01
    gap_user_ratio: float = 0.1
    gap_limit: int = 5
    ema_alpha: float = 0.2

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        return cls(
            elo=EloConfig(**settings.get_elo_config()),
            srs=SM2Config(**settings.get_srs_config()),
            cluster_max_iterations=settings.cluster_max_iterations,
            cluster_seed=settings.cluster_seed,
            syllabus_weights=dict(settings.syllabus_weights),
            default_syllabus_weight=settings.default_syllabus_weight,
            study_plan_size=settings.study_plan_size,
            gap_min_corpus_weight=settings.gap_min_corpus_weight,
            gap_user_ratio=settings.gap_user_ratio,
            gap_limit=settings.gap_limit,
            ema_alpha=settings.ema_alpha,
        )


@dataclass
class PassResult:
    """Everything one pass produces."""

    snapshot: AnalysisSnapshot
    data_update: DataUpdate
    report: AnalysisReport


def apply_learning_updates(
    snapshot: AnalysisSnapshot,
    config: EngineConfig,
    now: datetime | None = None,
) -> tuple[AnalysisSnapshot, DataUpdate]:
    """
    Run the mutation-bearing steps (Elo, then SM-2).

    Returns:
        (updated snapshot, patches for the host)
    """
    ratings = update_ratings(snapshot, config.elo)
    snapshot = snapshot.apply_patches(ratings.question_patches, ratings.user_patch)

    srs_patches = schedule_latest_exam(snapshot, now=now, config=config.srs)
    snapshot = snapshot.apply_patches(srs_patches)

    update = DataUpdate(
        updated_questions=[p.to_dict() for p in merge_patches(ratings.question_patches, srs_patches)],
        updated_user_metrics=ratings.user_patch.to_dict(),
    )
    return snapshot, update


def build_report(
    snapshot: AnalysisSnapshot,
    config: EngineConfig,
    rng: np.random.Generator | None = None,
) -> AnalysisReport:
    """Run the read-only analyses over ``snapshot``."""
    clusters = cluster_errors(
        snapshot,
        max_iterations=config.cluster_max_iterations,
        rng=rng if rng is not None else config.cluster_seed,
    )
    plan = generate_study_plan(
        snapshot,
        syllabus_weights=config.syllabus_weights,
        default_weight=config.default_syllabus_weight,
        limit=config.study_plan_size,
    )
    gaps = find_knowledge_gaps(
        snapshot,
        min_corpus_weight=config.gap_min_corpus_weight,
        user_ratio=config.gap_user_ratio,
        limit=config.gap_limit,
    )
    trend = calculate_score_trend(snapshot, alpha=config.ema_alpha)

    return AnalysisReport(
        predicted_score=predict_score(snapshot),
        error_clusters=[ErrorClusterEntry(name=c.name, count=c.count) for c in clusters] if clusters else None,
        study_plan=[StudyPlanEntry(subject=r.subject, priority=r.priority) for r in plan],
        knowledge_gaps=(
            [KnowledgeGapEntry(topic=g.topic, gap_score=g.gap_score) for g in gaps] if gaps is not None else None
        ),
        score_trend=[ScoreTrendEntry(date=p.date, score=p.score, ema=p.ema) for p in trend] if trend else None,
    )


def run_full_pass(
    snapshot: AnalysisSnapshot,
    config: EngineConfig | None = None,
    now: datetime | None = None,
    rng: np.random.Generator | None = None,
    on_data_update: Callable[[DataUpdate], None] | None = None,
) -> PassResult:
    """
    Run one complete pass.

    ``on_data_update`` is called as soon as the patches exist, before the
    read-only analyses start.
    """
    config = config or EngineConfig()
    logger.info(
        "HLPE: starting full analysis ({} batches, {} exams)",
        len(snapshot.batches),
        len(snapshot.exam_history),
    )

    snapshot, update = apply_learning_updates(snapshot, config, now=now)
    if on_data_update is not None:
        on_data_update(update)

    report = build_report(snapshot, config, rng=rng)
    logger.info("HLPE: analysis complete ({} question patches)", len(update.updated_questions))
    return PassResult(snapshot=snapshot, data_update=update, report=report)
