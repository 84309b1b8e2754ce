"""logtrigger configuration management."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LOGTRIGGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "logtrigger"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Engine hard caps (termination guarantees)
    max_multi_instances: int = 20  # Concurrently active MULTI instances
    max_chain_resets: int = 100  # Consecutive delay-cancel resets per chain run
    max_firings: int = 100  # Chain attempts per limitation evaluation

    # Timestamp format used when the caller does not pass one
    default_timestamp_format: str | None = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("max_multi_instances", "max_chain_resets", "max_firings")
    @classmethod
    def validate_caps(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Engine caps must be at least 1")
        return v

    @field_validator("default_timestamp_format", mode="before")
    @classmethod
    def blank_format_is_none(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
