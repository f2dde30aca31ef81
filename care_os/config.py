"""Configuration management for CareOS."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/care_os.db",
        description="Async SQLAlchemy DSN (postgresql+psycopg://... in production)",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo emitted SQL statements",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    # Package suggestion defaults
    suggestion_min_match_score: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Minimum match score for a package to be suggested",
    )
    suggestion_max_suggestions: int = Field(
        default=3,
        ge=1,
        description="Maximum number of package suggestions per matching run",
    )
    suggestion_default_source_type: str = Field(
        default="MANUAL",
        description="Source type recorded when the caller does not supply one",
    )

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
