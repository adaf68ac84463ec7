"""Environment-driven settings for the research service."""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./person_research.db"

VALID_SEARCH_PROVIDERS = {"agent", "tavily"}


class Settings(BaseModel):
    """Runtime configuration. Model names live in ``research.agents``."""

    model_config = ConfigDict(frozen=True)

    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    search_provider: str = Field(default="agent")
    tavily_api_key: str = Field(default="")
    bulk_max_concurrency: int = Field(default=15)
    bulk_job_ttl_seconds: int = Field(default=24 * 60 * 60)
    max_bulk_jobs: int = Field(default=100)
    environment: str = Field(default="development")

    @field_validator("search_provider")
    @classmethod
    def validate_search_provider(cls, value: str) -> str:
        provider = value.strip().lower()
        if provider not in VALID_SEARCH_PROVIDERS:
            allowed = ", ".join(sorted(VALID_SEARCH_PROVIDERS))
            raise ValueError(f"Invalid search provider '{value}'. Allowed: {allowed}")
        return provider

    @field_validator("bulk_max_concurrency", "bulk_job_ttl_seconds", "max_bulk_jobs")
    @classmethod
    def validate_positive_ints(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Configuration values must be >= 1")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raw strings go through field validation, so a malformed value raises
        ``pydantic.ValidationError`` instead of being replaced by a default.
        """
        return cls.model_validate(
            {
                "database_url": os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
                "search_provider": os.getenv("RESEARCH_SEARCH_PROVIDER", "agent"),
                "tavily_api_key": os.getenv("TAVILY_API_KEY", ""),
                "bulk_max_concurrency": os.getenv("BULK_RESEARCH_MAX_CONCURRENCY", "15"),
                "bulk_job_ttl_seconds": os.getenv("BULK_JOB_TTL_SECONDS", str(24 * 60 * 60)),
                "max_bulk_jobs": os.getenv("MAX_BULK_JOBS", "100"),
                "environment": os.getenv("ENVIRONMENT", "development"),
            }
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings for production."""
    return Settings.from_env()
