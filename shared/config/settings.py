"""
Centralized configuration management for NewsDesk services.
Uses Pydantic Settings for validation and type safety.
"""

import re
from functools import lru_cache
from typing import List, Optional

import pytz
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppBaseSettings(BaseSettings):
    """Base settings with shared configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class DatabaseSettings(AppBaseSettings):
    """Database configuration settings."""

    database_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "POSTGRES_URL"),
    )
    postgres_user: str = Field(
        default="postgres",
        validation_alias="POSTGRES_USER",
    )
    postgres_password: str = Field(
        default="",
        validation_alias="POSTGRES_PASSWORD",
    )
    postgres_db: str = Field(
        default="ai_news",
        validation_alias="POSTGRES_DB",
    )
    postgres_host: str = Field(
        default="localhost",
        validation_alias="POSTGRES_HOST",
    )
    postgres_port: int = Field(
        default=5432,
        validation_alias="POSTGRES_PORT",
    )
    echo: bool = Field(
        default=False,
        validation_alias="DB_ECHO",
    )

    @model_validator(mode="after")
    def build_database_url(self):
        """Compose a PostgreSQL URL from its parts when DATABASE_URL is not set."""
        if not self.database_url:
            self.database_url = (
                f"postgresql://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        return self


class OpenAISettings(AppBaseSettings):
    """OpenAI API configuration settings."""

    api_key: Optional[str] = Field(
        default=None,
        validation_alias="OPENAI_API_KEY",
    )
    api_key_1: Optional[str] = Field(
        default=None,
        validation_alias="OPENAI_API_KEY_1",
    )
    api_key_2: Optional[str] = Field(
        default=None,
        validation_alias="OPENAI_API_KEY_2",
    )
    api_key_3: Optional[str] = Field(
        default=None,
        validation_alias="OPENAI_API_KEY_3",
    )
    model: str = Field(
        default="gpt-4",
        validation_alias="OPENAI_MODEL",
    )
    fallback_model: str = Field(
        default="gpt-3.5-turbo",
        validation_alias="OPENAI_FALLBACK_MODEL",
    )
    max_tokens: int = Field(
        default=1500,
        gt=0,
        validation_alias="OPENAI_MAX_TOKENS",
    )
    fallback_max_tokens: int = Field(
        default=1000,
        gt=0,
        validation_alias="OPENAI_FALLBACK_MAX_TOKENS",
    )
    temperature: float = Field(
        default=0.8,
        validation_alias="OPENAI_TEMPERATURE",
    )
    timeout: float = Field(
        default=60.0,
        validation_alias="OPENAI_TIMEOUT",
    )
    prompt_token_allowance: int = Field(
        default=0,
        ge=0,
        validation_alias="OPENAI_PROMPT_TOKEN_ALLOWANCE",
    )
    json_mode: bool = Field(
        default=False,
        validation_alias="OPENAI_JSON_MODE",
    )
    fallback_json_mode: bool = Field(
        default=True,
        validation_alias="OPENAI_FALLBACK_JSON_MODE",
    )

    @property
    def api_keys(self) -> List[str]:
        """All configured text-generation keys, in rotation order."""
        keys = [self.api_key_1, self.api_key_2, self.api_key_3, self.api_key]
        return [key for key in keys if key]


class ImageSettings(AppBaseSettings):
    """Stock-photo lookup configuration settings."""

    unsplash_access_key: Optional[str] = Field(
        default=None,
        validation_alias="UNSPLASH_ACCESS_KEY",
    )
    unsplash_api_url: str = Field(
        default="https://api.unsplash.com",
        validation_alias="UNSPLASH_API_URL",
    )
    placeholder_image_url: str = Field(
        default="https://placehold.co/1200x630?text={category}+News",
        validation_alias="PLACEHOLDER_IMAGE_URL",
    )
    http_timeout: float = Field(
        default=10.0,
        validation_alias="IMAGE_HTTP_TIMEOUT",
    )

    @field_validator("placeholder_image_url")
    @classmethod
    def validate_placeholder_template(cls, v):
        """The template may only reference {category}."""
        try:
            v.format(category="News")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"PLACEHOLDER_IMAGE_URL may only use {{category}}: {e!r}") from e
        return v


class QuotaSettings(AppBaseSettings):
    """Daily usage ceilings."""

    daily_token_quota: int = Field(
        default=200_000,
        ge=0,
        validation_alias="DAILY_TOKEN_QUOTA",
    )
    daily_image_quota: int = Field(
        default=50,
        ge=0,
        validation_alias="DAILY_IMAGE_QUOTA",
    )


class GenerationSettings(AppBaseSettings):
    """Generation loop and scheduling configuration settings."""

    delay_seconds: float = Field(
        default=2.0,
        ge=0,
        validation_alias="GENERATION_DELAY_SECONDS",
    )
    daily_article_count: int = Field(
        default=50,
        gt=0,
        validation_alias="DAILY_ARTICLE_COUNT",
    )
    batch_article_count: int = Field(
        default=10,
        gt=0,
        validation_alias="BATCH_ARTICLE_COUNT",
    )
    daily_generation_time: str = Field(
        default="06:00",
        validation_alias="DAILY_GENERATION_TIME",
    )
    batch_interval_hours: int = Field(
        default=4,
        gt=0,
        validation_alias="BATCH_INTERVAL_HOURS",
    )
    scheduler_enabled: bool = Field(
        default=True,
        validation_alias="SCHEDULER_ENABLED",
    )
    scheduler_timezone: str = Field(
        default="Asia/Kolkata",
        validation_alias="SCHEDULER_TIMEZONE",
    )
    trending_probability: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        validation_alias="TRENDING_PROBABILITY",
    )
    featured_probability: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        validation_alias="FEATURED_PROBABILITY",
    )
    min_articles_per_category: int = Field(
        default=5,
        ge=0,
        validation_alias="MIN_ARTICLES_PER_CATEGORY",
    )

    @field_validator("daily_generation_time")
    @classmethod
    def validate_daily_generation_time(cls, v):
        """Validate the HH:MM format expected by the scheduler."""
        if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", v):
            raise ValueError(f"DAILY_GENERATION_TIME must be HH:MM, got {v!r}")
        return v

    @field_validator("batch_interval_hours")
    @classmethod
    def validate_batch_interval(cls, v):
        """Batches run on clock hours (00:00, 04:00, ...), so the interval must divide a day."""
        if 24 % v:
            raise ValueError(f"BATCH_INTERVAL_HOURS must divide 24, got {v}")
        return v

    @field_validator("scheduler_timezone")
    @classmethod
    def validate_scheduler_timezone(cls, v):
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError as e:
            raise ValueError(f"Unknown SCHEDULER_TIMEZONE {v!r}") from e
        return v


class LoggingSettings(AppBaseSettings):
    """Logging configuration settings."""

    level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
    )
    include_correlation_id: bool = Field(
        default=True,
        validation_alias="LOG_INCLUDE_CORRELATION_ID",
    )
    json_logs: bool = Field(
        default=False,
        validation_alias="JSON_LOGS",
    )


class Settings(AppBaseSettings):
    """Main settings class that combines all configuration sections."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    images: ImageSettings = Field(default_factory=ImageSettings)
    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    service_name: str = Field(
        default="newsdesk",
        validation_alias="SERVICE_NAME",
    )
    environment: str = Field(
        default="development",
        validation_alias="ENVIRONMENT",
    )
    version: str = Field(
        default="1.0.0",
        validation_alias="SERVICE_VERSION",
    )
    port: int = Field(
        default=3001,
        validation_alias="PORT",
    )
    api_prefix: str = Field(
        default="/api",
        validation_alias="API_PREFIX",
    )
    cors_origins: str = Field(
        default="*",
        validation_alias="CORS_ORIGINS",
    )

    @property
    def cors_origin_list(self) -> List[str]:
        """Parse comma-separated CORS origins."""
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

