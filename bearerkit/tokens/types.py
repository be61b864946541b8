"""Token type definitions.

A token type describes a class of key (secret, publishable, restricted, or a
custom one): its wire prefix, default abilities, default lifetime, default
rate limit and the environments it may be issued in.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field, field_validator

from ..registry import StrategyRegistry


class TokenType(BaseModel):
    """Configuration for one class of token.

    Attributes:
        name: Human-readable name (e.g. "Secret")
        prefix: Wire prefix (e.g. "sk")
        abilities: Default abilities for newly issued tokens
        expiration: Default lifetime in minutes (None = never expires)
        rate_limit: Default requests per minute (None = unlimited)
        environments: Environments this type may be issued in
        server_side_only: Whether the key must never reach a browser
        generator: Generator name override (None = configured default)
    """

    name: str = Field(..., min_length=1)
    prefix: str = Field(..., min_length=1)
    abilities: list[str] = Field(default_factory=lambda: ["*"])
    expiration: int | None = Field(default=None, ge=0)
    rate_limit: int | None = Field(default=None, ge=0)
    environments: list[str] = Field(default_factory=lambda: ["test", "live"])
    server_side_only: bool = False
    generator: str | None = None

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Prefixes become a wire segment and must not contain the delimiter."""
        if "_" in v:
            raise ValueError(f"Token prefix must not contain '_': {v}")
        return v

    def allows_environment(self, environment: str) -> bool:
        return environment in self.environments

    def default_expires_at(self, now: datetime) -> datetime | None:
        """Expiration for a token issued at ``now`` using this type's default."""
        if self.expiration is None:
            return None
        return now + timedelta(minutes=self.expiration)


class TokenTypeRegistry(StrategyRegistry[TokenType]):
    """Registry of token types keyed by type name."""

    def __init__(self):
        super().__init__("token type")

    def find_by_prefix(self, prefix: str) -> TokenType | None:
        """Find the type that owns a wire prefix."""
        for name in self.all():
            token_type = self.get(name)
            if token_type.prefix == prefix:
                return token_type
        return None


DEFAULT_TOKEN_TYPES: dict[str, TokenType] = {
    "sk": TokenType(
        name="Secret",
        prefix="sk",
        abilities=["*"],
        expiration=None,
        rate_limit=None,
        server_side_only=True,
    ),
    "pk": TokenType(
        name="Publishable",
        prefix="pk",
        abilities=["read"],
        expiration=60 * 24 * 30,
        rate_limit=1000,
        server_side_only=False,
    ),
    "rk": TokenType(
        name="Restricted",
        prefix="rk",
        abilities=[],
        expiration=60 * 24 * 365,
        rate_limit=100,
        server_side_only=True,
    ),
}
