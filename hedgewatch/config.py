"""
HedgeWatch Configuration — service-wide settings.

The settings manage:
  - Service-level options (port, environment, log level)
  - Event store backend selection (in-memory seed file or MongoDB)
  - Live stream pacing
  - Market metadata resolver endpoints and cache lifetime
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service-wide settings, read from env vars and ``.env`` files."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Service ──────────────────────────────────────────────────────
    environment: Literal["development", "staging", "production"] = "development"
    port: int = 3000
    log_level: str = "INFO"
    log_json: bool = False

    # ── Event store ──────────────────────────────────────────────────
    event_store_backend: Literal["memory", "mongo"] = "memory"
    events_file: str = ""
    mongo_uri: str = ""
    mongo_database: str = "poly"
    mongo_collection: str = "gabagool_events"

    # ── Live stream ──────────────────────────────────────────────────
    stream_poll_interval: float = 3.0
    stream_batch_limit: int = 100
    stream_max_lifetime: float = 300.0

    # ── Market metadata ──────────────────────────────────────────────
    market_info_cache_ttl: float = 300.0
    gamma_api_url: str = "https://gamma-api.polymarket.com"
    clob_api_url: str = "https://clob.polymarket.com"

    # ── Reconstruction ───────────────────────────────────────────────
    merge_epsilon: float = 1e-3


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor — parsed once, cached forever."""
    return Settings()
