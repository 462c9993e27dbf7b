"""
Datasource Settings

Centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.

Configuration Categories:
=========================
- Application: Environment name and log level
- Repositories: Pagination and model auto-resolution
- Caching: Result caching switches, TTL and cache store selection
- Database: SQLAlchemy connection settings

Environment Variables:
======================
Every field is read from an environment variable prefixed with DATASOURCE_
(e.g. DATASOURCE_CACHE_RESULTS=true) or from a .env file.
Environment variables take precedence over .env file values.

Repositories read these values ONCE, when they are constructed. Changing
settings later does not affect repositories that already exist.

Usage:
======
    from datasource.config.settings import settings

    per_page = settings.DEFAULT_PER_PAGE
    if settings.CACHE_RESULTS:
        ...
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Datasource settings loaded from environment variables.

    All settings can be overridden via DATASOURCE_* environment variables
    or passed explicitly: Settings(CACHE_RESULTS=True).
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASOURCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════════════════════
    # APPLICATION
    # ═══════════════════════════════════════════════════════════════════════════════

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # ═══════════════════════════════════════════════════════════════════════════════
    # REPOSITORIES
    # ═══════════════════════════════════════════════════════════════════════════════

    DEFAULT_PER_PAGE: int = Field(
        default=15,
        ge=1,
        description="Page size used by paginate() when none is given",
    )
    AUTO_RESOLVE_MODELS: bool = Field(
        default=True,
        description="Guess the model from the repository name when none is declared",
    )
    MODEL_NAMESPACE: str = Field(
        default="app.models",
        description="Module searched for models during auto-resolution",
    )

    # ═══════════════════════════════════════════════════════════════════════════════
    # CACHING
    # ═══════════════════════════════════════════════════════════════════════════════

    CACHE_RESULTS: bool = Field(
        default=False,
        description="Cache terminal reads and flush the cache on writes",
    )
    CACHE_DURATION: int = Field(
        default=3600,
        description="Default cache TTL in seconds",
    )
    CACHE_PREFIX: str = Field(
        default="repo",
        description="Namespace prefix for cache keys and tags",
    )
    CACHE_STORE: str = Field(
        default="memory",
        pattern="^(memory|redis)$",
        description="Cache backend: in-process memory or Redis",
    )
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the redis cache store",
    )

    # ═══════════════════════════════════════════════════════════════════════════════
    # DATABASE
    # ═══════════════════════════════════════════════════════════════════════════════

    DATABASE_URL: str = Field(
        default="sqlite:///./datasource.db",
        description="SQLAlchemy connection URL",
    )
    DATABASE_ECHO: bool = False

    # ═══════════════════════════════════════════════════════════════════════════════
    # PROPERTIES
    # ═══════════════════════════════════════════════════════════════════════════════

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.APP_ENV == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.

    Returns:
        Settings: Datasource settings instance
    """
    return Settings()


# Global settings instance for convenient import
settings = get_settings()
