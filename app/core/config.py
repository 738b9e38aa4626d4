# app/core/config.py
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables (or a local `.env` file)
    at runtime.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    APP_NAME: str = "Live Session Scheduler"
    APP_ENV: str = Field("local", description="Environment name: local/test/dev/stage/prod")

    LOG_LEVEL: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR).",
    )

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./live_sessions.db",
        description="SQLAlchemy-compatible async database URL",
    )

    ADMIN_API_KEY: str | None = Field(
        default=None,
        description="API key required for endpoints that modify sessions.",
    )

    # --- Calendar / recurrence ---
    CALENDAR_TIMEZONE: str = Field(
        default="UTC",
        description=(
            "IANA timezone used as the calendar basis for recurrence expansion "
            "(day boundaries, weekdays, excluded dates)."
        ),
    )
    RECURRENCE_MAX_OCCURRENCES: int = Field(
        default=1000,
        ge=1,
        description="Hard cap on occurrences generated for a single session per query.",
    )
    CALENDAR_MAX_RANGE_DAYS: int = Field(
        default=366,
        ge=1,
        description="Longest calendar window (in days) a single query may request.",
    )

    @field_validator("CALENDAR_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        # Raises ZoneInfoNotFoundError (a KeyError) for unknown zones.
        try:
            ZoneInfo(v)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v}") from exc
        return v

    @property
    def calendar_tz(self) -> ZoneInfo:
        return ZoneInfo(self.CALENDAR_TIMEZONE)


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
