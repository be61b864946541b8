"""Rotation strategies.

The manager issues the replacement token and links the pair; the strategy
only decides what happens to the old token.

Strategies:
    immediate    - the old token is revoked as part of the rotation
    grace_period - the old token keeps working for N minutes
    dual_valid   - both tokens stay valid until one is revoked explicitly
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from ..store.base import TokenStore
from ..tokens.models import Clock, Token, utcnow

logger = logging.getLogger("bearerkit.rotation")


class RotationStrategy(ABC):
    """Base class for rotation strategies."""

    name: str = ""

    def __init__(self, store: TokenStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    @abstractmethod
    def rotate(self, old: Token, new: Token) -> None:
        """Apply the strategy to the old token once ``new`` exists."""

    def is_old_token_valid(self, old: Token, now: datetime | None = None) -> bool:
        """Whether the replaced token still authenticates at ``now``."""
        return not old.is_revoked(now or self.clock())

    def grace_period_minutes(self) -> int | None:
        """Minutes the old token survives, if the strategy has a window."""
        return None

    def _schedule_revocation(self, old: Token, at: datetime) -> None:
        for updated in self.store.revoke([old.id], at):
            old.revoked_at = updated.revoked_at
        if old.revoked_at is None:
            stored = self.store.find(old.id)
            old.revoked_at = stored.revoked_at if stored else at


class ImmediateStrategy(RotationStrategy):
    """Revokes the old token synchronously."""

    name = "immediate"

    def rotate(self, old: Token, new: Token) -> None:
        self._schedule_revocation(old, self.clock())
        logger.info(f"Rotated {old.id} -> {new.id}, old token revoked")


class GracePeriodStrategy(RotationStrategy):
    """Keeps the old token valid for a grace window after rotation."""

    name = "grace_period"

    def __init__(self, store: TokenStore, minutes: int = 60, clock: Clock = utcnow):
        super().__init__(store, clock)
        self.minutes = minutes

    def rotate(self, old: Token, new: Token) -> None:
        at = self.clock() + timedelta(minutes=self.minutes)
        self._schedule_revocation(old, at)
        logger.info(f"Rotated {old.id} -> {new.id}, old token valid until {old.revoked_at.isoformat()}")

    def grace_period_minutes(self) -> int | None:
        return self.minutes


class DualValidStrategy(RotationStrategy):
    """Leaves both tokens valid."""

    name = "dual_valid"

    def rotate(self, old: Token, new: Token) -> None:
        logger.info(f"Rotated {old.id} -> {new.id}, both tokens remain valid")
