"""Configuration management for the link-shortening service.

This module provides configuration using Pydantic BaseSettings with
environment variable and ``.env`` support. A single ``Settings`` instance is
built at startup and handed to every component that needs it; nothing in the
package reads configuration from a module-level global.

Flow Diagram - load_settings()
==============================
::
    ┌──────────────┐
    │ Process env  │
    │ + .env file  │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Settings()   │
    │ (validated)  │
    └──────┬───────┘
           ▼
    ┌──────────────┐      ┌──────────────┐
    │ ServiceMgr   │ ───▶ │ LinkService  │
    │ (startup)    │      │ TagService   │
    └──────────────┘      │ engine/redis │
                          └──────────────┘

How to Use
===========
**Step 1 - Build once at startup**::
    from shortlinks.config import load_settings
    settings = load_settings()

**Step 2 - Inject**::
    service = LinkService(store, cache, logger, settings)

Key Behaviours
===============
- Environment variables override defaults automatically.
- Out-of-range values (e.g. SHORT_CODE_LENGTH > 20) raise ValidationError.
- An empty REDIS_URL or CACHE_ENABLED=false disables the cache entirely.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "load_settings"]

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlinks"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlinks:shortlinks@db:5432/shortlinks"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_COMMAND_TIMEOUT_SECONDS: float = 5.0

    # Redis (optional accelerator for the redirect path)
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_ENABLED: bool = True
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 0.5
    REDIS_CONNECT_TIMEOUT_SECONDS: float = 0.5
    LINK_CACHE_KEY_PREFIX: str = "link:"
    LINK_CACHE_TTL_SECONDS: int = Field(default=24 * 60 * 60, ge=1)

    # Short code rules
    SHORT_CODE_LENGTH: int = Field(default=9, ge=1, le=20)
    SHORTCODE_MAX_LENGTH: int = Field(default=20, ge=1, le=20)
    SHORTCODE_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    MAX_URL_LENGTH: int = Field(default=2048, ge=1)

    # Listing
    DEFAULT_PAGE_SIZE: int = 5
    MAX_PAGE_SIZE: int = 100

    # Tags
    TAG_NAME_MAX_LENGTH: int = 30

    CORS_ALLOWED_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def cache_configured(self) -> bool:
        return self.CACHE_ENABLED and bool(self.REDIS_URL)


def load_settings(**overrides) -> Settings:
    return Settings(**overrides)
