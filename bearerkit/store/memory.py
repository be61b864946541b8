"""In-memory token store."""

from __future__ import annotations

import copy
import threading
from datetime import datetime

from ..tokens.models import EntityReference, Token, TokenGroup
from .base import TokenStore


class InMemoryTokenStore(TokenStore):
    """Thread-safe dict-backed store.

    Every read and write goes through one re-entrant lock and callers only
    ever receive copies, so a lookup never observes a half-applied batch.
    """

    def __init__(self):
        self._tokens: dict[str, Token] = {}
        self._by_hash: dict[str, str] = {}
        self._groups: dict[str, TokenGroup] = {}
        self._lock = threading.RLock()

    def find_by_hash(self, digest: str) -> Token | None:
        with self._lock:
            token_id = self._by_hash.get(digest)
            if token_id is None:
                return None
            return copy.deepcopy(self._tokens[token_id])

    def find(self, token_id: str) -> Token | None:
        with self._lock:
            token = self._tokens.get(token_id)
            return copy.deepcopy(token) if token else None

    def save(self, token: Token) -> None:
        with self._lock:
            existing = self._tokens.get(token.id)
            if existing is not None and existing.token != token.token:
                self._by_hash.pop(existing.token, None)
            self._tokens[token.id] = copy.deepcopy(token)
            self._by_hash[token.token] = token.id

    def load_group(self, group_id: str) -> list[Token]:
        with self._lock:
            return [copy.deepcopy(t) for t in self._tokens.values() if t.group_id == group_id]

    def load_children(self, token_id: str) -> list[Token]:
        with self._lock:
            return [copy.deepcopy(t) for t in self._tokens.values() if t.parent_id == token_id]

    def load_descendants(self, token_id: str, max_depth: int | None = None) -> list[Token]:
        with self._lock:
            return super().load_descendants(token_id, max_depth)

    def revoke(self, token_ids: list[str], at: datetime) -> list[Token]:
        changed: list[Token] = []
        with self._lock:
            for token_id in dict.fromkeys(token_ids):
                token = self._tokens.get(token_id)
                if token is None:
                    continue
                if token.revoked_at is not None and token.revoked_at <= at:
                    continue
                token.revoked_at = at
                changed.append(copy.deepcopy(token))
        return changed

    def touch(self, token_id: str, at: datetime) -> None:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is not None:
                token.last_used_at = at

    def link_rotation(self, old_id: str, new_id: str, at: datetime) -> None:
        with self._lock:
            token = self._tokens.get(old_id)
            if token is not None:
                token.replaced_by_id = new_id
                token.rotated_at = at

    def save_group(self, group: TokenGroup) -> None:
        with self._lock:
            stored = copy.deepcopy(group)
            stored.tokens = []
            self._groups[group.id] = stored

    def find_group(self, group_id: str) -> TokenGroup | None:
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                return None
            found = copy.deepcopy(group)
            found.tokens = self.load_group(group_id)
            return found

    def list_tokens(self, owner: EntityReference | None = None) -> list[Token]:
        with self._lock:
            tokens = [t for t in self._tokens.values() if owner is None or t.owner == owner]
            return [copy.deepcopy(t) for t in sorted(tokens, key=lambda t: t.created_at)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
