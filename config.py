"""
Configuration settings for the HLPE learning/analytics engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Exam syllabus weighting used by the study prioritizer.
DEFAULT_SYLLABUS_WEIGHTS: dict[str, float] = {
    "Medicine": 0.15,
    "Surgery": 0.15,
    "Obstetrics & Gynecology": 0.10,
    "Pediatrics": 0.10,
    "Pathology": 0.05,
    "Pharmacology": 0.05,
    "Microbiology": 0.05,
    "Forensic Medicine": 0.05,
    "Ophthalmology": 0.05,
    "ENT": 0.05,
    "Preventive & Social Medicine": 0.05,
}


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="HLPE_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Orchestration
    # ========================================
    throttle_seconds: float = Field(
        default=10.0,
        description="Minimum spacing between analysis passes triggered by ANALYZE",
    )

    # ========================================
    # Elo Rating
    # ========================================
    elo_k_factor: float = Field(
        default=32.0,
        description="K-factor applied to each rating exchange",
    )
    elo_default_rating: int = Field(
        default=1000,
        description="Rating assumed for users and questions without one",
    )

    # ========================================
    # SM-2 Settings (for spaced repetition)
    # ========================================
    srs_initial_easiness: float = Field(
        default=2.5,
        description="Easiness factor for questions never scheduled",
    )
    srs_minimum_easiness: float = Field(
        default=1.3,
        description="Floor for the easiness factor",
    )
    srs_easiness_step: float = Field(
        default=0.1,
        description="Easiness gained on each correct answer",
    )
    srs_first_interval: int = Field(
        default=1,
        description="Days until the first review",
    )
    srs_second_interval: int = Field(
        default=6,
        description="Days until the second review",
    )

    # ========================================
    # Error Clustering
    # ========================================
    cluster_max_iterations: int = Field(
        default=20,
        description="Upper bound on Lloyd iterations",
    )
    cluster_seed: int | None = Field(
        default=None,
        description="Seed for centroid sampling (None = unseeded)",
    )

    # ========================================
    # Study Plan
    # ========================================
    study_plan_size: int = Field(
        default=5,
        description="Number of subjects returned in the study plan",
    )
    default_syllabus_weight: float = Field(
        default=0.05,
        description="Weight for subjects missing from the syllabus table",
    )
    syllabus_weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SYLLABUS_WEIGHTS),
        description="Subject -> syllabus weight (JSON in HLPE_SYLLABUS_WEIGHTS)",
    )

    # ========================================
    # Knowledge Gaps (TF-IDF)
    # ========================================
    gap_min_corpus_weight: float = Field(
        default=0.01,
        description="Minimum corpus-average TF-IDF weight for a gap term",
    )
    gap_user_ratio: float = Field(
        default=0.1,
        description="User average must fall below this fraction of the corpus average",
    )
    gap_limit: int = Field(
        default=5,
        description="Number of knowledge gaps reported",
    )

    # ========================================
    # Trend
    # ========================================
    ema_alpha: float = Field(
        default=0.2,
        description="Smoothing factor for the score EMA",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_elo_config(self) -> dict[str, Any]:
        """Get Elo configuration as a dictionary."""
        return {
            "k_factor": self.elo_k_factor,
            "default_rating": self.elo_default_rating,
        }

    def get_srs_config(self) -> dict[str, Any]:
        """Get SM-2 configuration as a dictionary."""
        return {
            "initial_easiness": self.srs_initial_easiness,
            "minimum_easiness": self.srs_minimum_easiness,
            "easiness_step": self.srs_easiness_step,
            "first_interval": self.srs_first_interval,
            "second_interval": self.srs_second_interval,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
