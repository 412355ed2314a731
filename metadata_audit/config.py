"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "MetadataAudit"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Ruleset fragment source
    fragment_store: Literal["builtin", "yaml", "redis"] = "builtin"
    fragment_directory: str = "rulesets"
    fragment_redis_prefix: str = "aso_ruleset"
    redis_url: str = "redis://localhost:6379/0"

    # Merged ruleset cache (source config changes rarely, so minutes not seconds)
    ruleset_cache_enabled: bool = True
    ruleset_cache_ttl_seconds: int = 300

    # Intent classifier fallback
    intent_fallback_floor: float = 50.0
    intent_fallback_confidence: float = 0.1

    # Transactional safety confidence curve
    transactional_risky_base_confidence: float = 0.7
    transactional_safe_base_confidence: float = 0.6
    transactional_confidence_step: float = 0.1

    # Output
    recommendation_limit: int = 5
    default_locale: str = "en-US"
    default_platform: Literal["ios", "android"] = "ios"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        """Accept lower-case level names from the environment."""
        if isinstance(value, str):
            return value.strip().upper() or "INFO"
        return value

    @field_validator("intent_fallback_floor")
    @classmethod
    def validate_fallback_floor(cls, value: float) -> float:
        """Keep the dampening floor on the 0-100 score scale."""
        if not 0.0 <= value <= 100.0:
            raise ValueError("INTENT_FALLBACK_FLOOR must be between 0 and 100.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    return settings


settings = get_settings()
