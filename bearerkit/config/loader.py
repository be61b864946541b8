"""Configuration loader for bearerkit.

Loads ``BearerConfig`` from YAML files and applies environment overrides.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import BearerConfig
from .settings import Settings, get_settings

logger = logging.getLogger("bearerkit.config")

# Default config file locations (in order of precedence)
DEFAULT_CONFIG_PATHS = [
    "./bearer.yaml",
    "./config/bearer.yaml",
    "~/.config/bearerkit/bearer.yaml",
]


class ConfigLoadError(Exception):
    """Error loading bearerkit configuration."""

    pass


def load_config_from_file(path: str | Path) -> BearerConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        BearerConfig instance

    Raises:
        ConfigLoadError: If the file cannot be loaded or parsed
    """
    path = Path(path).expanduser().resolve()

    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    if not path.is_file():
        raise ConfigLoadError(f"Config path is not a file: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in config file: {e}") from e
    except OSError as e:
        raise ConfigLoadError(f"Cannot read config file: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigLoadError("Config file must contain a YAML mapping")

    try:
        config = BearerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid bearer configuration: {e}") from e

    logger.info(f"Loaded bearer config from {path} ({len(config.types)} token types)")
    return config


def apply_env_overrides(config: BearerConfig, settings: Settings | None = None) -> BearerConfig:
    """Apply environment variable overrides to a config.

    Environment variables take precedence over file settings.

    Args:
        config: Base configuration
        settings: Settings to apply (defaults to the cached process settings)

    Returns:
        A new BearerConfig with overrides applied
    """
    settings = settings or get_settings()
    data = config.model_dump()

    overrides: dict[tuple[str, ...], object] = {
        ("environments", "default"): settings.default_environment,
        ("generator",): settings.generator,
        ("hasher",): settings.hasher,
        ("audit", "driver"): settings.audit_driver,
        ("audit", "log_path"): settings.audit_log_path,
        ("revocation", "default"): settings.revocation_strategy,
        ("rotation", "default"): settings.rotation_strategy,
        ("derivation", "enabled"): settings.derivation_enabled,
        ("derivation", "max_depth"): settings.max_derivation_depth,
    }

    for keys, value in overrides.items():
        if value is None:
            continue
        target = data
        for key in keys[:-1]:
            target = target[key]
        if target[keys[-1]] != value:
            logger.info(f"Environment override {'.'.join(keys)}: {target[keys[-1]]} -> {value}")
            target[keys[-1]] = value

    try:
        return BearerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid environment override: {e}") from e


def load_config(settings: Settings | None = None) -> BearerConfig:
    """Load configuration from default locations.

    Precedence:
    1. BEARER_CONFIG_PATH environment variable
    2. ./bearer.yaml
    3. ./config/bearer.yaml
    4. ~/.config/bearerkit/bearer.yaml
    5. Built-in defaults

    Environment overrides are applied last.

    Raises:
        ConfigLoadError: If BEARER_CONFIG_PATH points at an unusable file
    """
    settings = settings or get_settings()
    config: BearerConfig | None = None

    if settings.config_path is not None:
        config = load_config_from_file(settings.config_path)
    else:
        for candidate in DEFAULT_CONFIG_PATHS:
            path = Path(candidate).expanduser()
            if path.is_file():
                config = load_config_from_file(path)
                break

    if config is None:
        logger.debug("No bearer config file found, using defaults")
        config = BearerConfig()

    return apply_env_overrides(config, settings)
