"""Exceptions for bearerkit.

Authentication failures share the ``AuthenticationError`` base and carry the
audit event kind they are reported as. The Guard catches them at its boundary;
everything else propagates to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .audit.events import AuditEventKind


class BearerError(Exception):
    """Base exception for all bearerkit errors."""

    error_code = "bearer_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {"error": self.error_code, "message": self.message}


class MalformedTokenError(BearerError):
    """Raised when a token string does not follow the wire format."""

    error_code = "malformed_token"


class ConfigurationError(BearerError):
    """Raised when configuration is invalid or incomplete."""

    error_code = "invalid_configuration"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Configuration error for '{field}': {reason}")


class UnknownStrategyError(BearerError):
    """Raised when a registry lookup names something that was never registered."""

    error_code = "unknown_strategy"

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"No {kind} registered under '{name}'")


class NoDefaultStrategyError(BearerError):
    """Raised when a registry has no default to hand out."""

    error_code = "no_default_strategy"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No default {kind} registered")


class InvalidTokenTypeError(BearerError):
    """Raised when issuing a token of an unregistered type."""

    error_code = "invalid_token_type"

    def __init__(self, token_type: str):
        self.token_type = token_type
        super().__init__(f"Token type '{token_type}' is not registered")


class InvalidEnvironmentError(BearerError):
    """Raised when a token environment is not allowed."""

    error_code = "invalid_environment"

    def __init__(self, environment: str, allowed: list[str]):
        self.environment = environment
        self.allowed = allowed
        super().__init__(
            f"Environment '{environment}' is not allowed (allowed: {', '.join(allowed)})"
        )


class MissingAbilityError(BearerError):
    """Raised when a token lacks a required ability."""

    error_code = "missing_ability"

    def __init__(self, ability: str):
        self.ability = ability
        super().__init__(f"Token is missing the '{ability}' ability")


# -----------------------------------------------------------------------------
# Authentication failures
# -----------------------------------------------------------------------------


class AuthenticationError(BearerError):
    """Base class for failures inside the validation pipeline."""

    error_code = "authentication_failed"
    audit_event = AuditEventKind.FAILED

    def audit_metadata(self) -> dict[str, Any]:
        """Context recorded on the audit event for this failure."""
        return {"reason": self.message}


class TokenNotFoundError(AuthenticationError):
    """Raised when no stored token matches the presented one."""

    error_code = "token_not_found"

    def __init__(self, message: str = "Token not found"):
        super().__init__(message)


class TokenRevokedError(AuthenticationError):
    """Raised when a revoked token is used or rotated."""

    error_code = "token_revoked"
    audit_event = AuditEventKind.REVOKED

    def __init__(self, revoked_at: datetime | None = None):
        self.revoked_at = revoked_at
        super().__init__("Token has been revoked")


class TokenExpiredError(AuthenticationError):
    """Raised when an expired token is used."""

    error_code = "token_expired"
    audit_event = AuditEventKind.EXPIRED

    def __init__(self, expired_at: datetime | None = None):
        self.expired_at = expired_at
        super().__init__("Token has expired")


class IpRestrictionError(AuthenticationError):
    """Raised when the request IP is outside the token's allow-list."""

    error_code = "ip_restricted"
    audit_event = AuditEventKind.IP_BLOCKED

    def __init__(self, ip: str | None):
        self.ip = ip
        super().__init__(f"IP address '{ip}' is not allowed for this token")

    def audit_metadata(self) -> dict[str, Any]:
        return {"reason": self.message, "ip": self.ip}


class DomainRestrictionError(AuthenticationError):
    """Raised when the request origin is outside the token's allow-list."""

    error_code = "domain_restricted"
    audit_event = AuditEventKind.DOMAIN_BLOCKED

    def __init__(self, domain: str | None):
        self.domain = domain
        if domain is None:
            message = "Origin or Referer header required for domain-restricted token"
        else:
            message = f"Domain '{domain}' is not allowed for this token"
        super().__init__(message)

    def audit_metadata(self) -> dict[str, Any]:
        return {"reason": self.message, "domain": self.domain}


class RateLimitExceededError(AuthenticationError):
    """Raised when the token has exhausted its rate limit."""

    error_code = "rate_limit_exceeded"
    audit_event = AuditEventKind.RATE_LIMITED

    def __init__(self, limit: int, retry_after: float):
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit of {limit} requests per minute exceeded, retry after {retry_after:.1f}s"
        )

    def audit_metadata(self) -> dict[str, Any]:
        return {"reason": self.message, "limit": self.limit, "retry_after": self.retry_after}


# -----------------------------------------------------------------------------
# Derivation failures
# -----------------------------------------------------------------------------


class CannotDeriveTokenError(BearerError):
    """Raised when a parent token is not allowed to derive children."""

    error_code = "cannot_derive_token"

    def __init__(self, reason: str, parent_id: str | None = None):
        self.reason = reason
        self.parent_id = parent_id
        super().__init__(f"Cannot derive token from parent '{parent_id}': {reason}")


class InvalidDerivedAbilitiesError(BearerError):
    """Raised when requested child abilities exceed the parent's."""

    error_code = "invalid_derived_abilities"

    def __init__(self, requested: list[str], parent: list[str]):
        self.requested = requested
        self.parent = parent
        excess = sorted(set(requested) - set(parent))
        super().__init__(
            f"Derived abilities must be a subset of the parent's; not granted: {', '.join(excess)}"
        )


class InvalidDerivedExpirationError(BearerError):
    """Raised when a child would outlive its parent."""

    error_code = "invalid_derived_expiration"

    def __init__(self, requested: datetime | None, parent: datetime | None):
        self.requested = requested
        self.parent = parent
        if requested is None:
            message = f"Derived token must expire no later than its parent ({parent.isoformat()})"
        else:
            message = (
                f"Derived expiration {requested.isoformat()} is after "
                f"parent expiration {parent.isoformat() if parent else 'never'}"
            )
        super().__init__(message)
