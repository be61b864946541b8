"""Token store contract.

The engine keeps no durable state of its own; everything lives behind a
``TokenStore``. Implementations must make a hash lookup atomically consistent
with a concurrent ``revoke`` and must apply a ``revoke`` batch as one unit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ..tokens.models import EntityReference, Token, TokenGroup


class TokenStore(ABC):
    """Abstract token store."""

    @abstractmethod
    def find_by_hash(self, digest: str) -> Token | None:
        """Find a token by the digest of its plaintext."""

    @abstractmethod
    def find(self, token_id: str) -> Token | None:
        """Find a token by id."""

    @abstractmethod
    def save(self, token: Token) -> None:
        """Insert or replace a token."""

    @abstractmethod
    def load_group(self, group_id: str) -> list[Token]:
        """All tokens belonging to a group."""

    @abstractmethod
    def load_children(self, token_id: str) -> list[Token]:
        """Tokens derived directly from a token."""

    def load_descendants(self, token_id: str, max_depth: int | None = None) -> list[Token]:
        """All tokens below a token in its derivation tree, breadth first.

        Args:
            token_id: Root of the subtree (not included in the result)
            max_depth: Number of levels to walk (None = unlimited)
        """
        descendants: list[Token] = []
        seen = {token_id}
        frontier = [token_id]
        level = 0
        while frontier and (max_depth is None or level < max_depth):
            next_frontier = []
            for parent_id in frontier:
                for child in self.load_children(parent_id):
                    if child.id in seen:
                        continue
                    seen.add(child.id)
                    descendants.append(child)
                    next_frontier.append(child.id)
            frontier = next_frontier
            level += 1
        return descendants

    @abstractmethod
    def revoke(self, token_ids: list[str], at: datetime) -> list[Token]:
        """Set ``revoked_at`` on a batch of tokens as one unit.

        Compare-and-set: a token is only changed when it has no ``revoked_at``
        yet or its scheduled one is later than ``at``. ``revoked_at`` is never
        cleared and never moved later.

        Returns:
            The tokens whose state changed, with their new state.
        """

    @abstractmethod
    def touch(self, token_id: str, at: datetime) -> None:
        """Record a successful use of a token."""

    @abstractmethod
    def link_rotation(self, old_id: str, new_id: str, at: datetime) -> None:
        """Point a rotated-out token at its replacement.

        Only ``replaced_by_id`` and ``rotated_at`` change; a revocation
        written concurrently is kept.
        """

    @abstractmethod
    def save_group(self, group: TokenGroup) -> None:
        """Insert or replace a group record (its tokens are saved separately)."""

    @abstractmethod
    def find_group(self, group_id: str) -> TokenGroup | None:
        """Find a group by id, with its tokens loaded."""

    @abstractmethod
    def list_tokens(self, owner: EntityReference | None = None) -> list[Token]:
        """List tokens, optionally only those of one owner, oldest first."""
