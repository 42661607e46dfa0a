"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development (every channel
runs in simulation mode until a real provider is configured).

Usage:
    from backend.app.core.config import settings
    print(settings.SCHEDULER_GRANULARITY_SECONDS)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Notification Scheduler"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    RELOAD: bool = True  # auto-reload on file changes (dev only)

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Scheduler ──
    SCHEDULER_GRANULARITY_SECONDS: float = 1.0  # longest single sleep of the timing loop
    SCHEDULER_MAX_WORKERS: int = 4  # concurrent dispatches
    SCHEDULER_STOP_TIMEOUT_SECONDS: float = 10.0
    SCHEDULER_HISTORY_SIZE: int = 1000  # delivery records kept in memory

    # ── Slack ──
    SLACK_PROVIDER: str = "simulation"  # simulation | webhook
    SLACK_WEBHOOK_URL: Optional[str] = None

    # ── Email ──
    EMAIL_PROVIDER: str = "simulation"  # simulation | smtp
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    EMAIL_FROM_ADDRESS: str = "notifications@localhost"

    # ── Message (SMS) ──
    SMS_PROVIDER: str = "simulation"  # simulation | webhook
    SMS_GATEWAY_URL: Optional[str] = None
    SMS_API_KEY: Optional[str] = None

    DELIVERY_TIMEOUT_SECONDS: float = 15.0

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
