"""Application configuration using pydantic-settings pattern."""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Portal settings loaded from environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Home-School Portal"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # libSQL / Turso; unset means a local file database
    database_url: str | None = None
    database_auth_token: str | None = None

    meeting_link_base: str = Field(
        default="https://meet.portal.local/room",
        description="Prefix for system-generated online meeting links",
    )

    # Bulk endpoints the dashboards hydrate from
    dashboard_api_base_url: str = "http://localhost:3000"
    dashboard_fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    dashboard_fetch_retries: int = Field(default=3, ge=1)
    student_recent_score_limit: int = Field(default=4, ge=1)
    parent_recent_score_limit: int = Field(default=3, ge=1)
    dashboard_meeting_limit: int = Field(default=10, ge=1)

    @field_validator("app_env")
    @classmethod
    def normalize_env(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    @field_validator("meeting_link_base", "dashboard_api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
