"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. All keys use the
``SCHEMEMITRA_`` prefix (e.g. ``SCHEMEMITRA_LOG_LEVEL``).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the SchemeMitra core.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEMEMITRA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    # ── Rules ──────────────────────────────────────────────────────────
    default_rule_weight: int = Field(default=10, ge=1, le=100)

    # ── Matching ───────────────────────────────────────────────────────
    # 0 disables thread-pool scoring entirely.
    match_parallel_threshold: int = Field(default=0, ge=0)
    match_max_workers: int = Field(default=4, ge=1)

    # ── Organizer promotion ────────────────────────────────────────────
    promotion_reason_min_length: int = Field(default=50, ge=1)

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
