"""Parent/child token derivation.

A token may derive children that are never more powerful than itself: fewer
or equal abilities, an expiry no later than its own, and (when restrictions
are inherited) the same or tighter IP, domain and rate-limit constraints.
All checks run before anything is persisted.

Depth is counted from the root of the tree: a root token has depth 0 and its
direct children depth 1. ``max_depth`` is the deepest level a child may sit
at.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from .config.models import DerivationConfig
from .exceptions import (
    CannotDeriveTokenError,
    InvalidDerivedAbilitiesError,
    InvalidDerivedExpirationError,
)
from .store.base import TokenStore
from .tokens.abilities import AbilitySet
from .tokens.models import Clock, Token, utcnow

logger = logging.getLogger("bearerkit.derivation")


@dataclass(frozen=True)
class Restrictions:
    """IP, domain and rate-limit constraints resolved for a child token."""

    allowed_ips: list[str] | None
    allowed_domains: list[str] | None
    rate_limit_per_minute: int | None


class DerivationHierarchy:
    """Validation and traversal of token derivation trees."""

    def __init__(self, store: TokenStore, config: DerivationConfig | None = None, clock: Clock = utcnow):
        self.store = store
        self.config = config or DerivationConfig()
        self.clock = clock

    # --- Traversal ---

    def parent(self, token: Token) -> Token | None:
        if token.parent_id is None:
            return None
        return self.store.find(token.parent_id)

    def children(self, token: Token) -> list[Token]:
        return self.store.load_children(token.id)

    def descendants(self, token: Token) -> list[Token]:
        """Every token below ``token``, breadth first."""
        return self.store.load_descendants(token.id)

    def is_root(self, token: Token) -> bool:
        return token.is_root()

    def depth(self, token: Token) -> int:
        return token.depth

    # --- Validation ---

    def cannot_derive_reason(self, token: Token, now: datetime | None = None) -> str | None:
        """Why ``token`` may not derive a child, or None if it may."""
        now = now or self.clock()
        if not self.config.enabled:
            return "derivation is disabled"
        if token.is_revoked(now):
            return "parent token is revoked"
        if token.is_expired(now):
            return "parent token is expired"
        if token.depth + 1 > self.config.max_depth:
            return f"maximum derivation depth of {self.config.max_depth} reached"
        return None

    def can_derive(self, token: Token, now: datetime | None = None) -> bool:
        return self.cannot_derive_reason(token, now) is None

    def validate(
        self,
        parent: Token,
        abilities: list[str],
        expires_at: datetime | None,
    ) -> datetime | None:
        """Check a derivation request.

        Args:
            parent: Token to derive from
            abilities: Requested child abilities
            expires_at: Requested child expiry (None = no explicit expiry)

        Returns:
            The expiry the child should be stored with

        Raises:
            CannotDeriveTokenError: If the parent cannot derive
            InvalidDerivedAbilitiesError: If abilities exceed the parent's
            InvalidDerivedExpirationError: If the child would outlive the parent
        """
        reason = self.cannot_derive_reason(parent)
        if reason is not None:
            raise CannotDeriveTokenError(reason, parent_id=parent.id)

        if self.config.enforce_ability_subset:
            requested = AbilitySet.of(abilities)
            if not requested.is_subset_of(parent.ability_set):
                raise InvalidDerivedAbilitiesError(list(abilities), list(parent.abilities))

        return self._resolve_expiration(parent, expires_at)

    def _resolve_expiration(self, parent: Token, expires_at: datetime | None) -> datetime | None:
        if parent.expires_at is None:
            return expires_at

        if expires_at is None:
            if self.config.enforce_expiration:
                raise InvalidDerivedExpirationError(None, parent.expires_at)
            return parent.expires_at

        if expires_at > parent.expires_at:
            raise InvalidDerivedExpirationError(expires_at, parent.expires_at)
        return expires_at

    def resolve_restrictions(
        self,
        parent: Token,
        allowed_ips: list[str] | None = None,
        allowed_domains: list[str] | None = None,
        rate_limit_per_minute: int | None = None,
    ) -> Restrictions:
        """Combine the parent's restrictions with requested overrides.

        With ``inherit_restrictions`` on, a parent's non-empty allow-lists
        always win and the stricter rate limit applies. With it off, the
        parent's values only fill in what the request leaves unset.
        """
        if self.config.inherit_restrictions:
            limits = [v for v in (parent.rate_limit_per_minute, rate_limit_per_minute) if v is not None]
            return Restrictions(
                allowed_ips=list(parent.allowed_ips) if parent.allowed_ips else allowed_ips,
                allowed_domains=list(parent.allowed_domains) if parent.allowed_domains else allowed_domains,
                rate_limit_per_minute=min(limits) if limits else None,
            )

        return Restrictions(
            allowed_ips=allowed_ips if allowed_ips is not None else parent.allowed_ips,
            allowed_domains=allowed_domains if allowed_domains is not None else parent.allowed_domains,
            rate_limit_per_minute=(
                rate_limit_per_minute if rate_limit_per_minute is not None else parent.rate_limit_per_minute
            ),
        )
