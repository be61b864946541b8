"""Revocation strategies.

A strategy decides which tokens a revocation touches and when it takes
effect. Every strategy applies its whole affected set with one
``TokenStore.revoke`` batch, so a concurrent authentication sees either the
old state or the fully revoked one.

Strategies:
    none                - only the given token
    cascade             - every token in the token's group
    partial             - group members of selected types (e.g. sk and rk)
    cascade_descendants - the token and its whole derivation subtree
    timed               - the token, effective after a delay
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from ..store.base import TokenStore
from ..tokens.models import Clock, Token, utcnow

logger = logging.getLogger("bearerkit.revocation")


class RevocationStrategy(ABC):
    """Base class for revocation strategies."""

    name: str = ""

    def __init__(self, store: TokenStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    @abstractmethod
    def affected_tokens(self, token: Token) -> list[Token]:
        """Tokens a revocation of ``token`` would touch. Never mutates."""

    def revocation_time(self) -> datetime:
        """Moment the revocation takes effect."""
        return self.clock()

    def revoke(self, token: Token) -> list[Token]:
        """Revoke the affected set.

        Idempotent: tokens already revoked at or before the revocation time
        are left alone, so repeating a revoke changes nothing.

        Returns:
            Tokens whose ``revoked_at`` changed
        """
        at = self.revocation_time()
        affected = self.affected_tokens(token)
        changed = self.store.revoke([t.id for t in affected], at)

        for updated in changed:
            if updated.id == token.id:
                token.revoked_at = updated.revoked_at

        if changed:
            logger.info(
                f"Revoked {len(changed)} token(s) via '{self.name}' strategy "
                f"starting from {token.id} (effective {at.isoformat()})"
            )
        return changed


class NoneStrategy(RevocationStrategy):
    """Revokes only the given token."""

    name = "none"

    def affected_tokens(self, token: Token) -> list[Token]:
        return [token]


class CascadeStrategy(RevocationStrategy):
    """Revokes every token sharing the token's group."""

    name = "cascade"

    def affected_tokens(self, token: Token) -> list[Token]:
        if token.group_id is None:
            return [token]
        return self.store.load_group(token.group_id)


class PartialCascadeStrategy(RevocationStrategy):
    """Revokes group members whose type is in ``types``.

    The given token itself is spared when its type is not listed. Tokens
    outside any group are revoked alone.
    """

    name = "partial"

    def __init__(self, store: TokenStore, types: list[str], clock: Clock = utcnow):
        super().__init__(store, clock)
        self.types = list(types)

    def affected_tokens(self, token: Token) -> list[Token]:
        if token.group_id is None:
            return [token]
        return [t for t in self.store.load_group(token.group_id) if t.type in self.types]


class CascadeDescendantsStrategy(RevocationStrategy):
    """Revokes the token and every token derived from it, at any depth."""

    name = "cascade_descendants"

    def __init__(self, store: TokenStore, max_depth: int | None = None, clock: Clock = utcnow):
        super().__init__(store, clock)
        self.max_depth = max_depth

    def affected_tokens(self, token: Token) -> list[Token]:
        return [token, *self.store.load_descendants(token.id, self.max_depth)]


class TimedStrategy(RevocationStrategy):
    """Schedules revocation of the token after a delay.

    The token stays valid until the delay has elapsed. A second timed revoke
    inside the window does not postpone it; an immediate revoke can still
    bring it forward.
    """

    name = "timed"

    def __init__(self, store: TokenStore, delay_minutes: int = 60, clock: Clock = utcnow):
        super().__init__(store, clock)
        self.delay_minutes = delay_minutes

    def revocation_time(self) -> datetime:
        return self.clock() + timedelta(minutes=self.delay_minutes)

    def affected_tokens(self, token: Token) -> list[Token]:
        return [token]
