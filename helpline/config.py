"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Deployment environment: "dev" | "test" | "staging" | "prod"
ENV = os.getenv("HELPLINE_ENV", "dev").lower()

# Scheduler (optional, one runner only in multi-replica deployments)
SCHEDULER_ENABLED = os.getenv("HELPLINE_SCHEDULER_ENABLED", "0") in {
    "1",
    "true",
    "yes",
    "True",
    "YES",
}

RATE_LIMIT_BACKENDS = {"memory", "database"}


class Settings(BaseSettings):
    """Environment configuration for the Helpline backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///helpline.db"

    # --- Auth ------------------------------------------------------------
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 7
    ALLOWED_EMAIL_DOMAIN: str = "purdue.edu"
    LOGIN_MAX_ATTEMPTS: int = 5
    LOCKOUT_SECONDS: int = 2 * 60 * 60
    BCRYPT_ROUNDS: int = 12

    # --- Beacon / SOS ----------------------------------------------------
    BEACON_DEFAULT_DURATION_SECONDS: int = 300
    BEACON_MAX_DURATION_SECONDS: int = 24 * 60 * 60
    BEACON_SWEEP_SECONDS: int = 15
    SOS_NOTIFY_DELAY_SECONDS: int = 2
    NOTIFY_SWEEP_SECONDS: int = 5

    # --- Rate limiting ---------------------------------------------------
    RATE_LIMIT_BACKEND: str = "memory"
    RATE_LIMIT_MAX_KEYS: int = 10_000
    # Only honour X-Forwarded-For when the app sits behind a proxy that rewrites it.
    TRUSTED_PROXY: bool = False

    # --- Runtime ---------------------------------------------------------
    SCHEDULER_ENABLED: bool = SCHEDULER_ENABLED
    ALLOW_DB_CREATE_ALL: bool = False
    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:3000"]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False

    # --- Campus resources (QR payload) -----------------------------------
    STUDENT_HEALTH_NUMBER: str = "(765) 494-1700"
    CAMPUS_COUNSELING_NUMBER: str = "(765) 494-6995"
    CAMPUS_POLICE_NUMBER: str = "(765) 494-8221"
    CAMPUS_EMERGENCY_NUMBER: str = "911"
    HEALTH_CENTER_ADDRESS: str = "601 Stadium Ave, West Lafayette, IN 47907"
    POLICE_ADDRESS: str = "205 S. Martin Jischke Drive, West Lafayette, IN 47907"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("RATE_LIMIT_BACKEND")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if cleaned not in RATE_LIMIT_BACKENDS:
            raise ValueError(f"RATE_LIMIT_BACKEND must be one of {sorted(RATE_LIMIT_BACKENDS)}")
        return cleaned

    @field_validator("ALLOWED_EMAIL_DOMAIN")
    @classmethod
    def _normalise_domain(cls, value: str) -> str:
        return value.strip().lower().lstrip("@")


class AppInfo(BaseModel):
    name: str = "helpline-backend"
    version: str = "1.0.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "SCHEDULER_ENABLED",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
