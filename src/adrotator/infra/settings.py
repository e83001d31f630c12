"""
Application settings for adrotator.

This module defines all configuration settings for adrotator using Pydantic BaseSettings.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings using Pydantic BaseSettings."""

    # Rotator defaults
    ad_api: str = Field(default="http://127.0.0.1:8000/api/v1/ad", alias="ADROTATOR_API")
    analytics_endpoint: str = Field(default="/api/v1/ad/event", alias="ADROTATOR_ANALYTICS_ENDPOINT")
    slot_selector: str = Field(default="ad-banner*", alias="ADROTATOR_SLOT_SELECTOR")
    default_interval_ms: int = Field(default=30_000, alias="ADROTATOR_DEFAULT_INTERVAL_MS")
    fetch_timeout_ms: int = Field(default=8_000, alias="ADROTATOR_FETCH_TIMEOUT_MS")
    max_retries: int = Field(default=3, alias="ADROTATOR_MAX_RETRIES")
    backoff_factor: float = Field(default=2.0, alias="ADROTATOR_BACKOFF_FACTOR")
    min_video_play_visibility: float = Field(default=0.5, alias="ADROTATOR_MIN_VIDEO_PLAY_VISIBILITY")
    recently_shown_limit: int = Field(default=20, alias="ADROTATOR_RECENTLY_SHOWN_LIMIT")
    stagger_start_max_ms: int = Field(default=2_000, alias="ADROTATOR_STAGGER_START_MAX_MS")
    storage_key: str = Field(default="ads.lastShown", alias="ADROTATOR_STORAGE_KEY")
    history_dir: str = Field(default="~/.adrotator", alias="ADROTATOR_HISTORY_DIR")

    # AdSource service
    catalog_path: str | None = Field(default=None, alias="ADROTATOR_CATALOG_PATH")
    event_log_path: str = Field(default="logs/ad_events.log", alias="ADROTATOR_EVENT_LOG")
    disable_event_log: bool = Field(default=False, alias="DISABLE_AD_LOG")
    server_host: str = Field(default="127.0.0.1", alias="ADROTATOR_HOST")
    server_port: int = Field(default=8000, alias="ADROTATOR_PORT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    env: str = Field(default="dev", alias="ENV")  # dev|prod|test

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    def history_path(self) -> Path:
        """File backing the persisted recent-history list."""
        return Path(self.history_dir).expanduser() / f"{self.storage_key}.json"


def _resolve_env_file() -> str | None:
    # 1) Explicit override
    explicit = os.getenv("ADROTATOR_ENV_FILE")
    if explicit and Path(explicit).is_file():
        return explicit

    # 2) CWD .env
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)

    # 3) Walk up from this file to find nearest .env
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


# Global settings instance (load from best-effort .env discovery)
_env_file = _resolve_env_file()
settings = Settings(_env_file=_env_file) if _env_file else Settings()  # type: ignore[call-arg]
