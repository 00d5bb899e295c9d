"""Configuration using pydantic-settings."""

import os
from datetime import timedelta
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with validation and constants."""

    host: str = "0.0.0.0"  # nosec B104 - Required for container deployment
    port: int = 8000
    log_level: str = "INFO"
    log_file: str | None = None

    environment: Literal["development", "docker", "lambda"] = "development"
    cors_origins: list[str] = ["*"]

    database_url: str = "sqlite+aiosqlite:///./data/diagnosis.db"

    aws_region: str = "us-east-1"
    dynamodb_table: str = "profile-diagnosis"

    # Scraping service
    apify_api_token: str | None = None
    apify_actor_id: str = "apify/instagram-profile-scraper"
    scraper_timeout: int = 50

    # Generation service
    generation_provider: Literal["dify", "litellm"] = "dify"
    dify_api_key: str | None = None
    dify_api_url: str | None = None
    dify_user: str = "api-user"
    litellm_model: str = "gemini/gemini-1.5-flash-latest"
    litellm_api_key: str | None = None
    generation_timeout: int = 55

    # Cache and rate limit policy
    cache_ttl_hours: float = 6
    rate_limit_count: int = 10
    rate_limit_window_seconds: int = 24 * 60 * 60
    request_timeout: float = 60

    # Prompt shaping
    max_recent_posts: int = 5
    caption_max_length: int = 100

    @property
    def is_lambda_environment(self) -> bool:
        """Check if running in AWS Lambda."""
        return self.environment == "lambda" or bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME"))

    @property
    def effective_database_url(self) -> str:
        """Get the effective database URL based on environment."""
        if self.is_lambda_environment:
            return f"dynamodb://{self.dynamodb_table}?region={self.aws_region}"
        return self.database_url

    @property
    def cache_ttl(self) -> timedelta:
        """Freshness window for stored diagnoses."""
        return timedelta(hours=self.cache_ttl_hours)

    @model_validator(mode="after")
    def validate_policy(self) -> "Settings":
        """Reject policy values that would disable the cache or the limiter silently."""
        if self.cache_ttl_hours <= 0:
            raise ValueError("CACHE_TTL_HOURS must be positive")
        if self.rate_limit_count < 1:
            raise ValueError("RATE_LIMIT_COUNT must be at least 1")
        if self.rate_limit_window_seconds < 1:
            raise ValueError("RATE_LIMIT_WINDOW_SECONDS must be at least 1")
        return self

    @model_validator(mode="after")
    def validate_environment(self) -> "Settings":
        """Set environment based on DIAGNOSIS_ENV or AWS Lambda detection."""
        env = os.getenv("DIAGNOSIS_ENV", "").lower()
        if env in ("lambda", "docker", "development"):
            self.environment = env  # type: ignore[assignment]
        elif os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
            self.environment = "lambda"
        return self

    class Config:
        """Pydantic config."""

        env_prefix = "DIAGNOSIS_"
        env_file = ".env"
        extra = "ignore"


settings = Settings()


def get_settings() -> Settings:
    """Get settings instance (for dependency injection)."""
    return settings
