"""Configuration settings for the obligation generation engine."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Host application REST API (collaborator interfaces)
    backend_api_url: str = Field(
        default="http://localhost:3000", validation_alias="BACKEND_API_URL"
    )
    backend_api_token: SecretStr | None = Field(
        default=None, validation_alias="BACKEND_API_TOKEN"
    )
    backend_timeout: float = Field(default=30.0, validation_alias="BACKEND_TIMEOUT")
    backend_max_retries: int = Field(default=3, validation_alias="BACKEND_MAX_RETRIES")

    # Catalog semantics
    levy_tag: str = Field(default="TVA", validation_alias="LEVY_TAG")
    catalog_path: Path | None = Field(default=None, validation_alias="CATALOG_PATH")

    # Generation window and derived fields
    forward_months: int = Field(
        default=12, ge=1, validation_alias="GENERATION_FORWARD_MONTHS"
    )
    priority_high_days: int = Field(default=7, ge=0, validation_alias="PRIORITY_HIGH_DAYS")
    priority_medium_days: int = Field(
        default=30, ge=0, validation_alias="PRIORITY_MEDIUM_DAYS"
    )
    period_locale: Literal["en", "fr"] = Field(default="en", validation_alias="PERIOD_LOCALE")
    timezone: str = Field(default="Europe/Paris", validation_alias="ENGINE_TIMEZONE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
