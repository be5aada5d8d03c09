"""Application settings parsed from environment variables and defaults."""

import json
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _split_list(value: str | list[str] | None) -> list[str] | None:
    """Normalize list-valued settings from JSON, CSV, or list inputs."""
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]
        return [item.strip() for item in stripped.split(",") if item.strip()]
    return None


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = "MovieMatch API"
    environment: str = "development"
    api_prefix: str = "/api"
    log_level: str = "INFO"

    cors_origins: list[str] | str = Field(default_factory=lambda: DEFAULT_CORS_ORIGINS.copy())
    health_allowlist: list[str] | str = Field(default_factory=list)

    recommender_base_url: str = "http://localhost:5001"

    rapidapi_key: Optional[str] = None
    rapidapi_host: str = "streaming-availability.p.rapidapi.com"
    rapidapi_base_url: str = "https://streaming-availability.p.rapidapi.com"
    streaming_country: str = "us"

    http_connect_timeout_seconds: float = 5.0
    http_read_timeout_seconds: float = 10.0
    rate_limit_max_attempts: int = 3
    rate_limit_initial_backoff_seconds: float = 1.0
    rate_limit_max_backoff_seconds: float = 8.0

    enrichment_max_concurrency: int = 8
    enrichment_task_timeout_seconds: float = 15.0

    genre_refresh_interval_seconds: int = 0
    genre_refresh_max_attempts: int = 3
    genre_refresh_initial_backoff_seconds: float = 2.0

    movie_search_title: str = "inception"
    preference_store_url: Optional[str] = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_cors_origins(cls, value: str | list[str] | None) -> list[str]:
        """Fall back to the local frontend origins when nothing usable is set."""
        return _split_list(value) or DEFAULT_CORS_ORIGINS.copy()

    @field_validator("health_allowlist", mode="before")
    @classmethod
    def _split_health_allowlist(cls, value: str | list[str] | None) -> list[str]:
        return _split_list(value) or []

    @field_validator("rapidapi_key", "preference_store_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        """Treat empty strings from .env files as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("recommender_base_url", "rapidapi_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings to avoid re-parsing environment variables."""
    return Settings()


settings = get_settings()
