"""Configuration models for bearerkit.

``BearerConfig`` is the full configuration surface the engine consumes. It
can be built in code, loaded from YAML (see ``loader``) or left at its
defaults, which mirror a Stripe-like sk/pk/rk setup with test/live
environments.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from ..tokens.types import DEFAULT_TOKEN_TYPES, TokenType


class EnvironmentsConfig(BaseModel):
    """Allowed token environments and the issuance default."""

    allowed: list[str] = Field(default_factory=lambda: ["test", "live"])
    default: str = "test"

    @model_validator(mode="after")
    def default_is_allowed(self) -> EnvironmentsConfig:
        for environment in self.allowed:
            if not environment or "_" in environment:
                raise ValueError(f"Invalid environment name: {environment!r}")
        if self.default not in self.allowed:
            raise ValueError(f"Default environment '{self.default}' is not in allowed environments")
        return self


class AuditConfig(BaseModel):
    """Audit driver selection.

    Attributes:
        driver: Name of the audit driver to use (memory, jsonl, logging, null)
        log_path: Output file for the jsonl driver
        redact_sensitive: Redact token-shaped strings before writing
    """

    driver: str = "memory"
    log_path: Path = Field(default=Path("./logs/bearer-audit.jsonl"))
    max_file_size_mb: int = 100
    max_files: int = 10
    redact_sensitive: bool = True


class RateLimitingConfig(BaseModel):
    """Rate limit defaults.

    Resolution order for a token: its own ``rate_limit_per_minute``, then
    ``type_environments[type][environment]``, then the token type's
    ``rate_limit``, then ``environments[environment]``, then ``default``.
    """

    enabled: bool = True
    default: int | None = None
    environments: dict[str, int] = Field(default_factory=lambda: {"test": 10000, "live": 1000})
    type_environments: dict[str, dict[str, int]] = Field(default_factory=dict)
    burst_multiplier: float = Field(default=1.0, ge=1.0)


class RevocationConfig(BaseModel):
    """Revocation strategy defaults.

    Attributes:
        default: Strategy used when a type has no mode of its own
        modes: Per-type strategy names
        partial_types: Types revoked by the "partial" strategy
        timed_delay_minutes: Delay applied by the "timed" strategy
    """

    default: str = "none"
    modes: dict[str, str] = Field(
        default_factory=lambda: {"sk": "cascade", "pk": "none", "rk": "none"}
    )
    partial_types: list[str] = Field(default_factory=lambda: ["sk", "rk"])
    timed_delay_minutes: int = Field(default=60, ge=0)


class RotationConfig(BaseModel):
    """Rotation strategy defaults."""

    default: str = "immediate"
    modes: dict[str, str] = Field(default_factory=dict)
    grace_period_minutes: int = Field(default=60, ge=0)


class DerivationConfig(BaseModel):
    """Parent/child derivation rules.

    Attributes:
        enabled: Whether tokens may derive children at all
        max_depth: Deepest allowed level below a root token (root = 0)
        inherit_restrictions: When True the parent's IP/domain lists and
            rate limit are mandatory for children; when False they are only
            defaults that the child may override
        enforce_ability_subset: Require child abilities within the parent's
        enforce_expiration: Require an explicit child expiry when the parent
            expires
    """

    enabled: bool = True
    max_depth: int = Field(default=3, ge=0)
    inherit_restrictions: bool = True
    enforce_ability_subset: bool = True
    enforce_expiration: bool = True


class BearerConfig(BaseModel):
    """Complete bearerkit configuration."""

    environments: EnvironmentsConfig = Field(default_factory=EnvironmentsConfig)
    generator: str = "seam"
    hasher: str = "sha256"
    types: dict[str, TokenType] = Field(
        default_factory=lambda: {name: t.model_copy(deep=True) for name, t in DEFAULT_TOKEN_TYPES.items()}
    )
    group_helpers: dict[str, str] = Field(
        default_factory=lambda: {"secret": "sk", "publishable": "pk", "restricted": "rk"}
    )
    audit: AuditConfig = Field(default_factory=AuditConfig)
    rate_limiting: RateLimitingConfig = Field(default_factory=RateLimitingConfig)
    revocation: RevocationConfig = Field(default_factory=RevocationConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    derivation: DerivationConfig = Field(default_factory=DerivationConfig)
    expiration: int | None = Field(
        default=None,
        ge=0,
        description="Global token lifetime in minutes measured from creation (None = off)",
    )

    @field_validator("group_helpers")
    @classmethod
    def validate_group_helpers(cls, v: dict[str, str]) -> dict[str, str]:
        missing = {"secret", "publishable", "restricted"} - set(v)
        if missing:
            raise ValueError(f"group_helpers missing keys: {', '.join(sorted(missing))}")
        return v
