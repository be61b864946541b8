"""SQLite-backed token store."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..tokens.models import EntityReference, Token, TokenGroup
from .base import TokenStore

logger = logging.getLogger("bearerkit.store")

# Default database location
DEFAULT_DB_PATH = Path.home() / ".config" / "bearerkit" / "tokens.db"

_TOKEN_COLUMNS = (
    "id",
    "type",
    "prefix",
    "environment",
    "name",
    "token",
    "abilities",
    "allowed_ips",
    "allowed_domains",
    "rate_limit_per_minute",
    "created_at",
    "expires_at",
    "revoked_at",
    "last_used_at",
    "group_id",
    "owner",
    "context",
    "boundary",
    "parent_id",
    "depth",
    "replaces_id",
    "replaced_by_id",
    "rotated_at",
    "metadata",
    "derived_metadata",
)


def _ts(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO timestamp so that text comparison orders correctly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _json_or_none(value: Any) -> str | None:
    return json.dumps(value) if value is not None else None


def _ref(value: EntityReference | None) -> str | None:
    return json.dumps(value.to_dict()) if value else None


def _parse_ref(value: str | None) -> EntityReference | None:
    return EntityReference.from_dict(json.loads(value)) if value else None


class SqliteTokenStore(TokenStore):
    """SQLite-backed token store.

    Digests are stored, never plaintext. Batch revocations run in a single
    ``BEGIN IMMEDIATE`` transaction so concurrent readers see either none or
    all of a cascade.

    Usage:
        store = SqliteTokenStore(Path("./tokens.db"))
        store.initialize()  # Create tables if needed
    """

    def __init__(self, db_path: Path | str | None = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.config/bearerkit/tokens.db
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the schema if it doesn't exist. Safe to call multiple times."""
        if self._initialized:
            return

        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tokens (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    prefix TEXT NOT NULL,
                    environment TEXT NOT NULL,
                    name TEXT NOT NULL,
                    token TEXT NOT NULL UNIQUE,
                    abilities TEXT NOT NULL DEFAULT '[]',
                    allowed_ips TEXT,
                    allowed_domains TEXT,
                    rate_limit_per_minute INTEGER,
                    created_at TEXT NOT NULL,
                    expires_at TEXT,
                    revoked_at TEXT,
                    last_used_at TEXT,
                    group_id TEXT,
                    owner TEXT,
                    context TEXT,
                    boundary TEXT,
                    parent_id TEXT,
                    depth INTEGER NOT NULL DEFAULT 0,
                    replaces_id TEXT,
                    replaced_by_id TEXT,
                    rotated_at TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    derived_metadata TEXT NOT NULL DEFAULT '{}'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS token_groups (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    owner TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tokens_group_id ON tokens(group_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tokens_parent_id ON tokens(parent_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tokens_owner ON tokens(owner)")
            conn.commit()
            self._initialized = True
            logger.info(f"Token store initialized at {self.db_path}")
        finally:
            conn.close()

    def _query(self, sql: str, params: tuple = ()) -> list[Token]:
        self.initialize()

        conn = self._get_connection()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_token(row) for row in rows]
        finally:
            conn.close()

    def find_by_hash(self, digest: str) -> Token | None:
        tokens = self._query("SELECT * FROM tokens WHERE token = ?", (digest,))
        return tokens[0] if tokens else None

    def find(self, token_id: str) -> Token | None:
        tokens = self._query("SELECT * FROM tokens WHERE id = ?", (token_id,))
        return tokens[0] if tokens else None

    def save(self, token: Token) -> None:
        self.initialize()

        placeholders = ", ".join("?" for _ in _TOKEN_COLUMNS)
        conn = self._get_connection()
        try:
            conn.execute(
                f"INSERT OR REPLACE INTO tokens ({', '.join(_TOKEN_COLUMNS)}) VALUES ({placeholders})",
                self._token_to_row(token),
            )
            conn.commit()
        finally:
            conn.close()

    def load_group(self, group_id: str) -> list[Token]:
        return self._query(
            "SELECT * FROM tokens WHERE group_id = ? ORDER BY created_at", (group_id,)
        )

    def load_children(self, token_id: str) -> list[Token]:
        return self._query(
            "SELECT * FROM tokens WHERE parent_id = ? ORDER BY created_at", (token_id,)
        )

    def revoke(self, token_ids: list[str], at: datetime) -> list[Token]:
        self.initialize()

        ids = list(dict.fromkeys(token_ids))
        if not ids:
            return []

        at_ts = _ts(at)
        marks = ", ".join("?" for _ in ids)
        where = f"id IN ({marks}) AND (revoked_at IS NULL OR revoked_at > ?)"

        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            rows = conn.execute(f"SELECT * FROM tokens WHERE {where}", (*ids, at_ts)).fetchall()
            conn.execute(f"UPDATE tokens SET revoked_at = ? WHERE {where}", (at_ts, *ids, at_ts))
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()

        changed = [self._row_to_token(row) for row in rows]
        for token in changed:
            token.revoked_at = _parse_ts(at_ts)
        if changed:
            logger.debug(f"Revoked {len(changed)} token(s) at {at_ts}")
        return changed

    def touch(self, token_id: str, at: datetime) -> None:
        self.initialize()

        conn = self._get_connection()
        try:
            conn.execute(
                "UPDATE tokens SET last_used_at = ? WHERE id = ?",
                (_ts(at), token_id),
            )
            conn.commit()
        finally:
            conn.close()

    def link_rotation(self, old_id: str, new_id: str, at: datetime) -> None:
        self.initialize()

        conn = self._get_connection()
        try:
            conn.execute(
                "UPDATE tokens SET replaced_by_id = ?, rotated_at = ? WHERE id = ?",
                (new_id, _ts(at), old_id),
            )
            conn.commit()
        finally:
            conn.close()

    def save_group(self, group: TokenGroup) -> None:
        self.initialize()

        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO token_groups (id, name, owner, metadata, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    group.id,
                    group.name,
                    _ref(group.owner),
                    json.dumps(group.metadata),
                    _ts(group.created_at),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def find_group(self, group_id: str) -> TokenGroup | None:
        self.initialize()

        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM token_groups WHERE id = ?", (group_id,)).fetchone()
        finally:
            conn.close()

        if row is None:
            return None

        return TokenGroup(
            id=row["id"],
            name=row["name"],
            owner=_parse_ref(row["owner"]),
            metadata=json.loads(row["metadata"]),
            created_at=_parse_ts(row["created_at"]),
            tokens=self.load_group(group_id),
        )

    def list_tokens(self, owner: EntityReference | None = None) -> list[Token]:
        if owner is None:
            return self._query("SELECT * FROM tokens ORDER BY created_at")
        return self._query(
            "SELECT * FROM tokens WHERE owner = ? ORDER BY created_at", (_ref(owner),)
        )

    def _token_to_row(self, token: Token) -> tuple:
        return (
            token.id,
            token.type,
            token.prefix,
            token.environment,
            token.name,
            token.token,
            json.dumps(token.abilities),
            _json_or_none(token.allowed_ips),
            _json_or_none(token.allowed_domains),
            token.rate_limit_per_minute,
            _ts(token.created_at),
            _ts(token.expires_at),
            _ts(token.revoked_at),
            _ts(token.last_used_at),
            token.group_id,
            _ref(token.owner),
            _ref(token.context),
            _ref(token.boundary),
            token.parent_id,
            token.depth,
            token.replaces_id,
            token.replaced_by_id,
            _ts(token.rotated_at),
            json.dumps(token.metadata),
            json.dumps(token.derived_metadata),
        )

    def _row_to_token(self, row: sqlite3.Row) -> Token:
        """Convert a database row to a Token."""
        return Token(
            id=row["id"],
            type=row["type"],
            prefix=row["prefix"],
            environment=row["environment"],
            name=row["name"],
            token=row["token"],
            abilities=json.loads(row["abilities"]),
            allowed_ips=json.loads(row["allowed_ips"]) if row["allowed_ips"] else None,
            allowed_domains=json.loads(row["allowed_domains"]) if row["allowed_domains"] else None,
            rate_limit_per_minute=row["rate_limit_per_minute"],
            created_at=_parse_ts(row["created_at"]),
            expires_at=_parse_ts(row["expires_at"]),
            revoked_at=_parse_ts(row["revoked_at"]),
            last_used_at=_parse_ts(row["last_used_at"]),
            group_id=row["group_id"],
            owner=_parse_ref(row["owner"]),
            context=_parse_ref(row["context"]),
            boundary=_parse_ref(row["boundary"]),
            parent_id=row["parent_id"],
            depth=row["depth"],
            replaces_id=row["replaces_id"],
            replaced_by_id=row["replaced_by_id"],
            rotated_at=_parse_ts(row["rotated_at"]),
            metadata=json.loads(row["metadata"]),
            derived_metadata=json.loads(row["derived_metadata"]),
        )
