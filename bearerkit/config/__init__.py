"""Configuration module."""

from .loader import ConfigLoadError, apply_env_overrides, load_config, load_config_from_file
from .models import (
    AuditConfig,
    BearerConfig,
    DerivationConfig,
    EnvironmentsConfig,
    RateLimitingConfig,
    RevocationConfig,
    RotationConfig,
)
from .settings import Settings, configure_logging, get_settings

__all__ = [
    "AuditConfig",
    "BearerConfig",
    "ConfigLoadError",
    "DerivationConfig",
    "EnvironmentsConfig",
    "RateLimitingConfig",
    "RevocationConfig",
    "RotationConfig",
    "Settings",
    "apply_env_overrides",
    "configure_logging",
    "get_settings",
    "load_config",
    "load_config_from_file",
]
