"""Configuration and environment loading for Agent Oracle."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Storage
    store_backend: Literal["memory", "supabase"] = "memory"
    supabase_url: str | None = None
    supabase_key: str | None = None

    # Provider API keys (a keyed source without its key fails fast)
    openweathermap_api_key: str | None = None
    weatherapi_api_key: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Fetching
    source_timeout_seconds: float = 5.0
    cache_ttl_seconds: float = 30.0
    cache_max_entries: int = 1024

    # Consensus
    consensus_tolerance: float = 0.05

    # Background maintenance
    maintenance_enabled: bool = True
    maintenance_interval: int = 60  # Seconds between cleanup passes
    event_history_ttl: float = 300  # Kept after a terminal event
    event_idle_ttl: float = 3600  # Kept without any new event
    finished_task_max_age: int = 3600


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
