import logging
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .local_search import LocalSearchConfig


class Settings(BaseSettings):
    """Scheduler settings"""

    # Logging
    log_level: str = Field(default="INFO", description="Root log level for scripts")

    # Local search
    enable_local_search: bool = Field(
        default=True, description="Run local search after greedy packing"
    )
    random_seed: int | None = Field(
        default=None, description="Seed for local search; None draws a fresh seed"
    )
    max_iterations: int = Field(default=100, ge=0)
    max_no_improvement: int = Field(default=20, ge=1)
    initial_temperature: float = Field(default=100.0, gt=0)
    cooling_rate: float = Field(default=0.95, gt=0, lt=1)

    # Fallback work hours for teams without any work-hour rules
    default_work_start_minute: int = Field(default=9 * 60, ge=0, le=24 * 60)
    default_work_end_minute: int = Field(default=18 * 60, ge=0, le=24 * 60)
    default_work_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5, 6, 7])

    # Meeting suggestions
    meeting_search_days: int = Field(default=14, ge=1)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a name the logging module knows"""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("default_work_days")
    @classmethod
    def validate_work_days(cls, v: list[int]) -> list[int]:
        if any(day < 1 or day > 7 for day in v):
            raise ValueError("Work days must be between 1 (Monday) and 7 (Sunday)")
        return sorted(set(v))

    @model_validator(mode="after")
    def validate_default_window(self) -> "Settings":
        if self.default_work_start_minute >= self.default_work_end_minute:
            raise ValueError("Default work hours must start before they end")
        return self

    def local_search_config(self) -> LocalSearchConfig:
        return LocalSearchConfig(
            max_iterations=self.max_iterations,
            max_no_improvement=self.max_no_improvement,
            initial_temperature=self.initial_temperature,
            cooling_rate=self.cooling_rate,
        )

    model_config = SettingsConfigDict(
        env_prefix="TEAM_SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
