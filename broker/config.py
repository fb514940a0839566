"""Configuration management using pydantic-settings."""
from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process-level settings loaded from environment variables.

    Configuration priority (highest to lowest):
    1. Runtime environment variables
    2. .env file
    3. Defaults in this class

    Backend selection for the secrets layer lives in
    broker.secrets.config.SecretsConfig.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BROKER_",
        case_sensitive=False,
        extra="ignore"
    )

    debug: bool = Field(
        default=False,
        description="Render logs for humans (console) instead of JSON"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )


# Global settings instance
settings = Settings()
