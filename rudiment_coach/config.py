"""
Configuration settings for rudiment-coach.

Uses Pydantic Settings for environment variable management with .env file support.
Every field can be overridden with a ``RUDIMENT_`` prefixed variable, e.g.
``RUDIMENT_DEFAULT_BPM=90``.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RUDIMENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".rudiment_coach",
        description="Directory holding the practice database",
    )
    db_filename: str = Field(
        default="state.db",
        description="SQLite file name inside data_dir",
    )
    catalog_path: Path | None = Field(
        default=None,
        description="Optional JSON file replacing the built-in rudiment catalog",
    )

    # ========================================
    # Tempo
    # ========================================
    default_bpm: int = Field(
        default=80,
        description="Tempo used for today's plan when none is given",
    )
    min_bpm: int = Field(
        default=40,
        ge=40,
        le=240,
        description="Lowest tempo the metronome will run at",
    )
    max_bpm: int = Field(
        default=240,
        ge=40,
        le=240,
        description="Highest tempo the metronome will run at",
    )
    bpm_step: int = Field(
        default=5,
        ge=1,
        description="Tempo change per nudge in the drill runner",
    )

    # ========================================
    # Plan Defaults
    # ========================================
    plan_size: int = Field(
        default=3,
        ge=1,
        description="Maximum number of drills in today's plan",
    )
    default_sets: int = Field(
        default=3,
        ge=1,
        description="Sets per drill",
    )
    default_duration_sec: int = Field(
        default=60,
        ge=1,
        description="Seconds per set",
    )

    # ========================================
    # Scoring
    # ========================================
    ema_alpha: float = Field(
        default=0.3,
        gt=0.0,
        le=1.0,
        description="Smoothing factor for the rolling rating (weight of the newest rep score)",
    )
    default_rating: float = Field(
        default=2.5,
        ge=1.0,
        le=5.0,
        description="Rating assumed for rudiments that were never practiced",
    )
    bottleneck_threshold: float = Field(
        default=3.0,
        description="Ratings below this are surfaced as bottlenecks",
    )

    # ========================================
    # Streak
    # ========================================
    streak_window_days: int = Field(
        default=14,
        ge=1,
        description="Days shown in the recent-history calendar",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging level for the stderr sink",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated at 1 MB)",
    )

    @model_validator(mode="after")
    def _check_tempo_bounds(self) -> Settings:
        if self.min_bpm > self.max_bpm:
            raise ValueError(f"min_bpm ({self.min_bpm}) must not exceed max_bpm ({self.max_bpm})")
        return self

    @property
    def db_path(self) -> Path:
        """Full path of the practice database."""
        return self.data_dir / self.db_filename

    def clamp_bpm(self, bpm: int) -> int:
        """Clamp a tempo into the configured range."""
        return max(self.min_bpm, min(self.max_bpm, bpm))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
