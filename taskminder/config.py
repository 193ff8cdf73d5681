from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskminder.schemas import BeforeDueAnchor


class Settings(BaseSettings):
    # App environment
    env: str = Field(default="development", alias="ENV")

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./dev.db", alias="DATABASE_URL")

    # Logging configuration used by taskminder.logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    console_log_level: str = Field(default="INFO", alias="CONSOLE_LOG_LEVEL")

    # Reminder scheduler
    reminder_scheduler_enabled: bool = Field(default=True, alias="REMINDER_SCHEDULER_ENABLED")
    reminder_check_interval_seconds: int = Field(default=60, gt=0, alias="REMINDER_CHECK_INTERVAL_SECONDS")
    reminder_at_due_tolerance_seconds: int = Field(default=60, ge=0, alias="REMINDER_AT_DUE_TOLERANCE_SECONDS")
    # "due" reminds each task once per before_due rule,
    # "now" keeps the legacy wall-clock window start.
    reminder_before_due_anchor: BeforeDueAnchor = Field(
        default=BeforeDueAnchor.due, alias="REMINDER_BEFORE_DUE_ANCHOR"
    )

    # Sample data for local demos
    seed_sample_data: bool = Field(default=False, alias="SEED_SAMPLE_DATA")

    audit_list_limit: int = Field(default=200, alias="AUDIT_LIST_LIMIT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
