"""Token data models."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .abilities import AbilitySet


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


# Injectable time source
Clock = Callable[[], datetime]


class Environment(str, Enum):
    """Built-in token environments. Custom environment strings are allowed."""

    TEST = "test"
    LIVE = "live"


@dataclass(frozen=True)
class EntityReference:
    """Opaque pointer to an owner, context or boundary entity.

    The engine only compares and propagates references; it never resolves them.
    """

    kind: str
    id: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "id": self.id}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EntityReference | None:
        if not data:
            return None
        return cls(kind=str(data["kind"]), id=str(data["id"]))


@dataclass(frozen=True)
class TokenComponents:
    """Parsed parts of a token string. Never persisted."""

    prefix: str
    environment: str
    secret: str
    full_token: str


@dataclass
class Token:
    """A stored API token.

    ``token`` holds the digest of the plaintext; the plaintext itself only
    exists in the ``NewAccessToken`` returned at issuance.

    ``revoked_at`` may lie in the future when a revocation was scheduled
    (timed revocation, grace-period rotation). The token counts as revoked
    once that moment has passed.
    """

    id: str
    type: str
    prefix: str
    environment: str
    name: str
    token: str
    abilities: list[str] = field(default_factory=list)
    allowed_ips: list[str] | None = None
    allowed_domains: list[str] | None = None
    rate_limit_per_minute: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None
    revoked_at: datetime | None = None
    last_used_at: datetime | None = None
    group_id: str | None = None
    owner: EntityReference | None = None
    context: EntityReference | None = None
    boundary: EntityReference | None = None
    parent_id: str | None = None
    depth: int = 0
    replaces_id: str | None = None
    replaced_by_id: str | None = None
    rotated_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    derived_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ability_set(self) -> AbilitySet:
        return AbilitySet.of(self.abilities)

    def can(self, ability: str) -> bool:
        """Check whether the token grants an ability."""
        return self.ability_set.allows(ability)

    def cant(self, ability: str) -> bool:
        return not self.can(ability)

    def is_revoked(self, now: datetime | None = None) -> bool:
        """Check whether the token's revocation has taken effect."""
        if self.revoked_at is None:
            return False
        return self.revoked_at <= (now or utcnow())

    def is_revocation_pending(self, now: datetime | None = None) -> bool:
        """Check whether a revocation is scheduled but not yet in effect."""
        return self.revoked_at is not None and not self.is_revoked(now)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the token is past its expiration."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def is_valid(self, now: datetime | None = None) -> bool:
        """Check if the token is currently valid."""
        now = now or utcnow()
        return not self.is_revoked(now) and not self.is_expired(now)

    def is_root(self) -> bool:
        """Check whether the token sits at the top of a derivation tree."""
        return self.parent_id is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (excludes the token digest for safety)."""

        def _iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "type": self.type,
            "prefix": self.prefix,
            "environment": self.environment,
            "name": self.name,
            "abilities": self.abilities,
            "allowed_ips": self.allowed_ips,
            "allowed_domains": self.allowed_domains,
            "rate_limit_per_minute": self.rate_limit_per_minute,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
            "revoked_at": _iso(self.revoked_at),
            "last_used_at": _iso(self.last_used_at),
            "group_id": self.group_id,
            "owner": self.owner.to_dict() if self.owner else None,
            "context": self.context.to_dict() if self.context else None,
            "boundary": self.boundary.to_dict() if self.boundary else None,
            "parent_id": self.parent_id,
            "depth": self.depth,
            "replaces_id": self.replaces_id,
            "replaced_by_id": self.replaced_by_id,
            "rotated_at": _iso(self.rotated_at),
            "metadata": self.metadata,
            "derived_metadata": self.derived_metadata,
        }


@dataclass
class TokenGroup:
    """Sibling tokens issued together for one owner (e.g. sk/pk/rk)."""

    id: str
    name: str
    owner: EntityReference | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    tokens: list[Token] = field(default_factory=list)
    helpers: dict[str, str] = field(
        default_factory=lambda: {"secret": "sk", "publishable": "pk", "restricted": "rk"}
    )

    def token(self, token_type: str) -> Token | None:
        """Get the first token of a given type in the group."""
        for token in self.tokens:
            if token.type == token_type:
                return token
        return None

    def secret_key(self) -> Token | None:
        return self.token(self.helpers["secret"])

    def publishable_key(self) -> Token | None:
        return self.token(self.helpers["publishable"])

    def restricted_key(self) -> Token | None:
        return self.token(self.helpers["restricted"])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner": self.owner.to_dict() if self.owner else None,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "tokens": [token.to_dict() for token in self.tokens],
        }


@dataclass(frozen=True)
class NewAccessToken:
    """A freshly issued token together with its one-time plaintext."""

    access_token: Token
    plain_text_token: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token.to_dict(),
            "plain_text_token": self.plain_text_token,
        }


@dataclass(frozen=True)
class NewTokenGroup:
    """A freshly issued group with the one-time plaintext of each member."""

    group: TokenGroup
    access_tokens: dict[str, NewAccessToken]

    def plain_text(self, token_type: str) -> str:
        return self.access_tokens[token_type].plain_text_token
