"""Configuration management for the bookmarker service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

How to Use
===========
**Step 1 — Import**::
    from bookmarker.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Hand it to the service context**::
    ctx = ServiceContext(settings)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Components never call get_settings() themselves; they receive the
  settings object from the service context.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "bookmarker"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://bookmarker:bookmarker@db:5432/bookmarker"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_REPLICA_URL: str = ""
    BOOKMARK_CACHE_KEY_PREFIX: str = "bookmark"
    BOOKMARK_CACHE_TTL_SECONDS: int = 3600

    # Key derivation ladder: widths KEY_MIN_LENGTH .. KEY_MIN_LENGTH + KEY_CANDIDATE_COUNT - 1
    KEY_MIN_LENGTH: int = 3
    KEY_CANDIDATE_COUNT: int = 12

    # Full-table scans
    SCAN_PAGE_SIZE: int = 100

    # Change feed
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_CHANGE_TOPIC: str = "bookmark_changes"
    CHANGE_STREAM_KEY: str = "bookmark_changes"

    # Enrichment worker
    ENRICHMENT_CONSUMER_GROUP: str = "bookmark_enrichment_group"
    ENRICHMENT_CONSUMER_NAME: str = "enrichment-consumer-1"
    ENRICHMENT_BATCH_SIZE: int = 100
    ENRICHMENT_BLOCK_MS: int = 1000
    ENRICHMENT_MAX_CONCURRENCY: int = 0
    ENRICHMENT_METRICS_PORT: int = 9200

    # Metadata fetch
    METADATA_FETCH_TIMEOUT_SECONDS: float = 10.0
    METADATA_USER_AGENT: str = "Mozilla/5.0 (compatible; Bookmarker/1.0)"
    METADATA_BLOCK_PRIVATE_HOSTS: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
