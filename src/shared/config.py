"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["production", "development"] = Field(default="production")

    # MongoDB (job records, documents, job descriptions)
    mongodb_uri: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="cv_pipeline")
    store_backend: Literal["mongo", "memory"] = Field(
        default="mongo", description="Where job records and documents live"
    )

    # OpenAI / LLM
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    openai_model: str = Field(default="gpt-4o-mini")
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    llm_timeout_seconds: float = Field(default=60.0)
    llm_max_retries: int = Field(default=3, description="In-adapter retries per call")
    llm_retry_delay: float = Field(default=1.0, description="First retry delay (seconds)")

    # Apify - job listing provider
    apify_api_token: SecretStr = Field(default=SecretStr(""))
    apify_actor_id: str = Field(default="bebity~linkedin-jobs-scraper")
    apify_base_url: str = Field(default="https://api.apify.com/v2")
    apify_timeout_seconds: float = Field(default=120.0)
    listing_location: str = Field(default="Indonesia")
    listing_max_results: int = Field(default=10, description="Listings fetched per role")

    # Queue & worker pool
    evaluation_concurrency: int = Field(default=5, ge=1)
    matcher_concurrency: int = Field(default=10, ge=1)
    queue_max_attempts: int = Field(default=3, ge=1)
    queue_backoff_delay: float = Field(default=5.0, description="Seconds before 2nd attempt")
    queue_backoff_multiplier: float = Field(default=2.0)
    completed_ttl_seconds: float = Field(default=3600.0)
    completed_keep: int = Field(default=100, description="Max finished entries kept per queue")
    failed_ttl_seconds: float = Field(default=24 * 3600.0)
    poll_interval_seconds: float = Field(
        default=5.0, description="Store polling interval for new jobs in daemon mode"
    )
    processing_stale_seconds: float = Field(
        default=900.0,
        ge=0,
        description="A processing job with no update for this long may be claimed by another worker",
    )

    # Matcher settings
    matcher_top_n: int = Field(default=5, ge=1)
    matcher_llm_skill_scoring: bool = Field(
        default=False, description="Ask the LLM for a 0-100 skill score per listing"
    )

    # Vector store
    vector_backend: Literal["memory"] = Field(default="memory")
    vector_top_k: int = Field(default=3)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def llm_enabled(self) -> bool:
        """Whether an OpenAI key is configured (otherwise offline mode)."""
        return bool(self.openai_api_key.get_secret_value())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
