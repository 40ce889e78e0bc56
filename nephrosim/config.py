"""
Simulation Configuration

Central settings for the progression engine. Values can be overridden with
NEPHROSIM_* environment variables or a project-level .env file.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine-wide tunables."""

    model_config = SettingsConfigDict(
        env_prefix="NEPHROSIM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Cohort clock ────────────────────────────────────────────────────
    max_cycles: int = Field(default=24, ge=1)          # one cycle ~ one month
    random_seed: Optional[int] = None                  # None = non-deterministic

    # ── Biological variability ──────────────────────────────────────────
    biomarker_floor: float = Field(default=5.0, gt=0)  # hard lower clamp for eGFR and uACR
    egfr_noise: float = Field(default=0.15, ge=0)      # ± mL/min per cycle
    uacr_noise: float = Field(default=0.05, ge=0)      # ± fraction per cycle

    # ── Treatment response ──────────────────────────────────────────────
    poor_adherence_threshold: float = Field(default=0.5, ge=0, le=1)
    poor_adherence_natural_weight: float = Field(default=0.7, ge=0, le=1)
    combination_bonus: float = Field(default=0.2, ge=0)

    # ── Cohort simulation ───────────────────────────────────────────────
    treatment_initiation_probability: float = Field(default=0.10, ge=0, le=1)
    adherence_change_probability: float = Field(default=0.20, ge=0, le=1)
    adherence_step: float = Field(default=0.15, ge=0)
    adherence_floor: float = Field(default=0.1, ge=0, le=1)
    initial_adherence_min: float = Field(default=0.6, ge=0, le=1)
    initial_adherence_max: float = Field(default=0.9, ge=0, le=1)

    # ── Logging ─────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_file: Optional[str] = None


settings = Settings()
