"""
Centralised settings loader.

Values come from the environment (or a local `.env`), names are matched
case-insensitively against the field names below.
"""

from __future__ import annotations
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ------------------------------------------------------------------ #
#  Master settings model
# ------------------------------------------------------------------ #
class _Settings(BaseSettings):
    # ─── runtime / DB / auth ────────────────────────────────────────
    env_name: str = "local"
    database_url: str = "sqlite+aiosqlite:///./meal_timeline.db"
    jwt_secret: str = "changeme"
    log_level: str = "INFO"

    # ─── timeline behaviour ─────────────────────────────────────────
    poll_interval_seconds: float = Field(30.0, gt=0)
    timeline_cache_ttl_seconds: float = Field(300.0, ge=0)
    default_meal_time: str = "lunch"

    # ─── outbound collaborators (optional) ──────────────────────────
    notification_webhook_url: str | None = None
    driver_assignment_url: str | None = None
    http_timeout_seconds: float = 10.0

    # allow other teammates’ env-vars without crashing
    model_config = SettingsConfigDict(
        extra="ignore", env_file=".env", env_file_encoding="utf-8"
    )


# ------------------------------------------------------------------ #
#  Cached singleton accessor
# ------------------------------------------------------------------ #
@lru_cache
def _cached() -> _Settings:  # pragma: no cover
    return _Settings()  # type: ignore[call-arg]


settings: _Settings = _cached()
