"""Configuration settings for the quota coordinator."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitConfig(BaseModel):
    """Configuration for rate limit handling.

    Controls whether 429 responses are recovered automatically and the
    thresholds used when reasoning about the remaining quota.
    """

    enabled: bool = Field(
        default=True,
        description="Automatically wait and reissue requests that hit the quota",
    )

    # Thresholds
    pause_threshold: int = Field(
        default=10,
        ge=0,
        description="Remaining requests at or below which callers should pause",
    )
    warning_remaining: int = Field(
        default=5,
        ge=0,
        description="Remaining requests at or below which status is WARNING",
    )
    max_batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Upper bound for optimal batch size calculations",
    )

    # Fallback when a 429 carries no rate limit headers
    fallback_limit: int = Field(
        default=60,
        ge=1,
        description="Assumed quota per window when headers are absent",
    )
    fallback_window_seconds: int = Field(
        default=60,
        ge=1,
        description="Assumed seconds until reset when headers are absent",
    )


class RetryConfig(BaseModel):
    """Configuration for bounded retries of quota-exceeded requests."""

    max_attempts: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Maximum reissues after a 429 before giving up",
    )
    base_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Milliseconds added to retry-after (or scaled when headers are absent)",
    )


class BatchConfig(BaseModel):
    """Configuration for sequential batch processing."""

    batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Items processed per chunk",
    )
    chunk_delay_ms: int = Field(
        default=100,
        ge=0,
        description="Fixed pause between chunks",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # Remote API
    # --------------------------------------------------------------------------
    api_base_url: str = Field(
        default="https://api.mailerlite.com/api/v2/",
        description="Base URL requests are replayed against",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds before a replayed request times out",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Rate Limiting, Retry & Batching
    # --------------------------------------------------------------------------
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Rate limit handling configuration",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry budget configuration",
    )
    batch: BatchConfig = Field(
        default_factory=BatchConfig,
        description="Batch processing configuration",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
