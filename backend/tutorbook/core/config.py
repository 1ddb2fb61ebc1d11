# backend/tutorbook/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment tag")
    log_level: str = Field(default="INFO", description="Root log level")

    database_url: str = Field(
        default="sqlite:///./tutorbook.db",
        description="SQLAlchemy database URL",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Optional Redis URL used for the distributed tutor mutex",
    )
    celery_broker_url: Optional[str] = Field(
        default=None,
        description="Celery broker URL (falls back to redis_url)",
    )

    default_timezone: str = Field(
        default="Asia/Jakarta",
        description="Timezone used when a tutor has not configured one",
    )

    # Booking lifecycle
    booking_pending_ttl_minutes: int = Field(
        default=360,
        gt=0,
        description="How long a booking may stay pending before it expires",
    )
    booking_start_buffer_minutes: int = Field(
        default=30,
        ge=0,
        description="Pending bookings expire at the latest this long before the session starts",
    )
    completion_grace_minutes: int = Field(
        default=0,
        ge=0,
        description="Delay after a session ends before it is auto-completed",
    )

    # Per-tutor critical section
    booking_lock_acquire_timeout_seconds: float = Field(default=10.0, gt=0)
    booking_lock_ttl_seconds: int = Field(default=30, gt=0)

    # Availability
    availability_max_range_days: int = Field(default=62, gt=0)

    # Sweeper / reminders
    expiry_sweep_batch_size: int = Field(default=200, gt=0)
    expiry_sweep_time_budget_seconds: float = Field(default=20.0, gt=0)
    expiry_sweep_interval_seconds: int = Field(default=60, gt=0)
    expiry_reminder_window_minutes: int = Field(default=60, ge=0)
    session_reminder_window_minutes: int = Field(default=1440, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_default_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def get_celery_broker_url(self) -> str:
        """Priority: CELERY_BROKER_URL -> REDIS_URL -> local default."""
        return self.celery_broker_url or self.redis_url or "redis://localhost:6379/0"


settings = Settings()
