"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
Cache settings live in cinelink.cache.config.
"""

from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Primary store
    DATABASE_URL: Optional[str] = None
    SQLITE_PATH: str = "cinelink_dev.db"
    SQL_DEBUG: bool = False

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGIN: str = "http://localhost:3000"

    # Scheduled rollup (UTC)
    SCHEDULER_ENABLED: bool = True
    ROLLUP_HOUR: int = 2
    ROLLUP_MINUTE: int = 0

    # Click events older than this are pruned
    CLICK_RETENTION_YEARS: int = 1

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGIN.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
