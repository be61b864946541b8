"""Configuration settings using Pydantic."""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment overrides for bearerkit.

    Unset values leave the loaded ``BearerConfig`` untouched.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_path: Path | None = Field(
        default=None,
        alias="BEARER_CONFIG_PATH",
        description="Path to a bearerkit YAML configuration file",
    )
    default_environment: str | None = Field(default=None, alias="BEARER_DEFAULT_ENVIRONMENT")
    generator: str | None = Field(default=None, alias="BEARER_GENERATOR")
    hasher: str | None = Field(default=None, alias="BEARER_HASHER")

    # Audit
    audit_driver: str | None = Field(default=None, alias="BEARER_AUDIT_DRIVER")
    audit_log_path: Path | None = Field(
        default=None,
        alias="BEARER_AUDIT_LOG_PATH",
        description="Path to audit log file (JSONL format)",
    )

    # Strategies
    revocation_strategy: str | None = Field(default=None, alias="BEARER_REVOCATION_STRATEGY")
    rotation_strategy: str | None = Field(default=None, alias="BEARER_ROTATION_STRATEGY")

    # Derivation
    derivation_enabled: bool | None = Field(default=None, alias="BEARER_DERIVATION_ENABLED")
    max_derivation_depth: int | None = Field(default=None, alias="BEARER_MAX_DERIVATION_DEPTH")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    """Get application settings (cached)."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure the ``bearerkit`` loggers from ``LOG_LEVEL``.

    Applications embedding bearerkit usually configure logging themselves;
    this is for scripts and services that don't.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("bearerkit").setLevel(settings.log_level.upper())
