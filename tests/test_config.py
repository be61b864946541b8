"""Tests for configuration models, loading and environment overrides."""

import logging

import pytest
from pydantic import ValidationError

from bearerkit.config import (
    BearerConfig,
    ConfigLoadError,
    EnvironmentsConfig,
    Settings,
    apply_env_overrides,
    configure_logging,
    load_config,
    load_config_from_file,
)
from bearerkit.tokens import TokenType


class TestModels:
    """Tests for configuration validation."""

    def test_defaults(self):
        """Test the built-in defaults."""
        config = BearerConfig()
        assert set(config.types) == {"sk", "pk", "rk"}
        assert config.environments.default == "test"
        assert config.generator == "seam"
        assert config.hasher == "sha256"
        assert config.revocation.modes["sk"] == "cascade"
        assert config.derivation.max_depth == 3
        assert config.expiration is None

    def test_defaults_not_shared(self):
        """Test each config gets its own copy of the default types."""
        first = BearerConfig()
        first.types["sk"].abilities.append("extra")
        assert BearerConfig().types["sk"].abilities == ["*"]

    def test_default_environment_must_be_allowed(self):
        """Test the default environment is validated."""
        with pytest.raises(ValidationError):
            EnvironmentsConfig(allowed=["test"], default="live")

    def test_environment_name_cannot_contain_delimiter(self):
        """Test environment names stay a single token segment."""
        with pytest.raises(ValidationError):
            EnvironmentsConfig(allowed=["my_env"], default="my_env")

    def test_prefix_cannot_contain_delimiter(self):
        """Test token prefixes stay a single token segment."""
        with pytest.raises(ValidationError):
            TokenType(name="Bad", prefix="s_k")

    def test_group_helpers_complete(self):
        """Test every helper key is required."""
        with pytest.raises(ValidationError):
            BearerConfig(group_helpers={"secret": "sk"})


class TestLoadFromFile:
    """Tests for YAML loading."""

    def test_load_yaml(self, tmp_path):
        """Test a YAML file populates the config."""
        path = tmp_path / "bearer.yaml"
        path.write_text(
            """
generator: random
environments:
  allowed: [dev, prod]
  default: dev
types:
  ak:
    name: Admin
    prefix: ak
    abilities: ["admin:*"]
    environments: [dev, prod]
revocation:
  default: cascade
derivation:
  max_depth: 1
"""
        )
        config = load_config_from_file(path)

        assert config.generator == "random"
        assert config.environments.allowed == ["dev", "prod"]
        assert config.types["ak"].abilities == ["admin:*"]
        assert config.revocation.default == "cascade"
        assert config.derivation.max_depth == 1

    def test_empty_file(self, tmp_path):
        """Test an empty file yields the defaults."""
        path = tmp_path / "bearer.yaml"
        path.write_text("")
        assert load_config_from_file(path) == BearerConfig()

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ConfigLoadError."""
        with pytest.raises(ConfigLoadError, match="not found"):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML raises ConfigLoadError."""
        path = tmp_path / "bearer.yaml"
        path.write_text("generator: [unclosed")
        with pytest.raises(ConfigLoadError, match="Invalid YAML"):
            load_config_from_file(path)

    def test_not_a_mapping(self, tmp_path):
        """Test a top-level list is rejected."""
        path = tmp_path / "bearer.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ConfigLoadError, match="mapping"):
            load_config_from_file(path)

    def test_invalid_values(self, tmp_path):
        """Test schema violations raise ConfigLoadError."""
        path = tmp_path / "bearer.yaml"
        path.write_text("derivation:\n  max_depth: -1\n")
        with pytest.raises(ConfigLoadError, match="Invalid bearer configuration"):
            load_config_from_file(path)


class TestEnvOverrides:
    """Tests for environment variable overrides."""

    def test_overrides_applied(self):
        """Test set variables replace config values."""
        settings = Settings(
            BEARER_GENERATOR="uuid",
            BEARER_REVOCATION_STRATEGY="timed",
            BEARER_MAX_DERIVATION_DEPTH=5,
            BEARER_DERIVATION_ENABLED=False,
        )
        config = apply_env_overrides(BearerConfig(), settings)

        assert config.generator == "uuid"
        assert config.revocation.default == "timed"
        assert config.derivation.max_depth == 5
        assert config.derivation.enabled is False

    def test_unset_leaves_config(self):
        """Test unset variables change nothing."""
        config = BearerConfig(generator="random")
        assert apply_env_overrides(config, Settings()).generator == "random"

    def test_invalid_override(self):
        """Test an override that breaks validation raises ConfigLoadError."""
        settings = Settings(BEARER_DEFAULT_ENVIRONMENT="staging")
        with pytest.raises(ConfigLoadError):
            apply_env_overrides(BearerConfig(), settings)

    def test_load_config_from_env_path(self, tmp_path):
        """Test BEARER_CONFIG_PATH selects the file."""
        path = tmp_path / "custom.yaml"
        path.write_text("hasher: sha512\n")
        config = load_config(Settings(BEARER_CONFIG_PATH=path))
        assert config.hasher == "sha512"

    def test_load_config_from_cwd(self, tmp_path, monkeypatch):
        """Test ./bearer.yaml is picked up."""
        (tmp_path / "bearer.yaml").write_text("generator: uuid\n")
        monkeypatch.chdir(tmp_path)
        assert load_config(Settings()).generator == "uuid"

    def test_load_config_defaults(self, tmp_path, monkeypatch):
        """Test defaults are used when no file exists."""
        monkeypatch.chdir(tmp_path)
        assert load_config(Settings()).generator == "seam"


class TestLogging:
    """Tests for logging setup."""

    def test_configure_logging(self):
        """Test LOG_LEVEL controls the package logger."""
        configure_logging(Settings(LOG_LEVEL="debug"))
        assert logging.getLogger("bearerkit").level == logging.DEBUG
        configure_logging(Settings(LOG_LEVEL="WARNING"))
        assert logging.getLogger("bearerkit").level == logging.WARNING
