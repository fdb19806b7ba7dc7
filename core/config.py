"""Application configuration with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"

    # Scheduling defaults
    default_session_time: time = time(18, 0)
    default_total_sessions: int = 24
    session_duration_minutes: int = 90
    calendar_window_padding_days: int = 7

    # Write path
    ledger_commit_retries: int = 3

    request_id_header_name: str = "X-Request-ID"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "ledger_commit_retries": 3,
    },
    "staging": {
        "log_level": "INFO",
        "ledger_commit_retries": 3,
    },
    "production": {
        "log_level": "WARNING",
        "ledger_commit_retries": 5,
    },
}


def get_database_url() -> str:
    """Resolve database URL from env var or the local SQLite default."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "sqlite+pysqlite:///./class_schedule.db"


def _parse_time(value: str, fallback: time) -> time:
    try:
        hour, minute = value.strip().split(":")
        return time(int(hour), int(minute))
    except ValueError:
        return fallback


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        default_session_time=_parse_time(os.getenv("DEFAULT_SESSION_TIME", "18:00"), time(18, 0)),
        default_total_sessions=int(os.getenv("DEFAULT_TOTAL_SESSIONS", "24")),
        session_duration_minutes=int(os.getenv("SESSION_DURATION_MINUTES", "90")),
        calendar_window_padding_days=int(os.getenv("CALENDAR_WINDOW_PADDING_DAYS", "7")),
        ledger_commit_retries=int(
            os.getenv("LEDGER_COMMIT_RETRIES", str(profile.get("ledger_commit_retries", 3)))
        ),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER_NAME", "X-Request-ID"),
    )
