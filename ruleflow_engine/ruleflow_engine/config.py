"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ruleflow_engine.checks.models import Severity

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables with RULEFLOW_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="RULEFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Execution
    max_parallel_checks: int = Field(default=8, ge=1)
    check_timeout_seconds: float = Field(default=300.0, gt=0)
    run_timeout_seconds: float | None = Field(default=None, gt=0)
    default_abort_severity: Severity = Severity.CRITICAL

    # Self-heal
    self_heal: bool = False
    max_heal_attempts: int = Field(default=3, ge=1)

    # Files
    pipeline_file: Path = Path("ruleflow.yaml")
    rules_file: Path = Path("ruleflow.rules.yaml")

    # Logging
    log_level: str = "WARNING"
    structured_logging: bool = False

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]
    logger.debug(
        "Loaded settings: max_parallel_checks=%d check_timeout=%.1fs self_heal=%s",
        settings.max_parallel_checks,
        settings.check_timeout_seconds,
        settings.self_heal,
    )
    return settings
