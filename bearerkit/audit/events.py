"""Audit event model.

Every lifecycle change and every authentication outcome produces one
``AuditEvent``. Drivers decide where events go.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuditEventKind(str, Enum):
    """Kinds of audit events."""

    # Lifecycle
    CREATED = "created"
    REVOKED = "revoked"
    ROTATED = "rotated"
    DERIVED = "derived"

    # Authentication
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    EXPIRED = "expired"
    RATE_LIMITED = "rate_limited"
    IP_BLOCKED = "ip_blocked"
    DOMAIN_BLOCKED = "domain_blocked"


class AuditEvent(BaseModel):
    """A single audit event.

    Attributes:
        id: Unique event identifier
        token_id: Token the event concerns (None when no token was resolved)
        kind: Type of event
        ip_address: Client IP address, when the event came from a request
        user_agent: Client user agent
        metadata: Event-specific context (parent ids, reasons, limits)
        timestamp: When the event happened (UTC)
        correlation_id: Groups the events produced by one operation
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    token_id: str | None = None
    kind: AuditEventKind
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    correlation_id: str | None = None

    @property
    def is_failure(self) -> bool:
        """Whether the event records a rejected authentication or a revocation.

        ``revoked`` is both the lifecycle event and the rejection of a revoked
        token, so it always counts.
        """
        return self.kind in FAILURE_KINDS


FAILURE_KINDS = frozenset(
    {
        AuditEventKind.FAILED,
        AuditEventKind.REVOKED,
        AuditEventKind.EXPIRED,
        AuditEventKind.RATE_LIMITED,
        AuditEventKind.IP_BLOCKED,
        AuditEventKind.DOMAIN_BLOCKED,
    }
)
