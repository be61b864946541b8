"""Audit trail for token lifecycle and authentication events.

Example usage:
    from bearerkit.audit import AuditEvent, AuditEventKind, JsonlAuditDriver

    driver = JsonlAuditDriver("./logs/bearer-audit.jsonl")
    driver.log(AuditEvent(token_id=token.id, kind=AuditEventKind.CREATED))
    driver.events_for(token.id)
"""

from __future__ import annotations

from .drivers import (
    AuditDriver,
    JsonlAuditDriver,
    LoggingAuditDriver,
    MemoryAuditDriver,
    NullAuditDriver,
    emit,
)
from .events import FAILURE_KINDS, AuditEvent, AuditEventKind
from .redaction import RedactionConfig, RedactionPattern, Redactor, get_redactor, redact

__all__ = [
    # Events
    "AuditEvent",
    "AuditEventKind",
    "FAILURE_KINDS",
    # Drivers
    "AuditDriver",
    "JsonlAuditDriver",
    "LoggingAuditDriver",
    "MemoryAuditDriver",
    "NullAuditDriver",
    "emit",
    # Redaction
    "RedactionConfig",
    "RedactionPattern",
    "Redactor",
    "get_redactor",
    "redact",
]
