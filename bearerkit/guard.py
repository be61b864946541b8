"""Authentication pipeline.

``Guard.authenticate`` runs a presented token through a fixed sequence of
checks and always returns an ``AuthenticationResult``:

    1. missing token        -> rejected, no audit event
    2. structural parse     -> failed
    3. digest lookup        -> failed (not found)
    4. revocation           -> revoked
    5. expiry               -> expired
    6. IP allow-list        -> ip_blocked
    7. domain allow-list    -> domain_blocked
    8. rate limit           -> rate_limited
    9. success              -> authenticated, last_used_at updated

The first failing check decides the outcome. Failures are raised internally as
``AuthenticationError`` subclasses and converted to a rejected result here,
so callers only ever branch on the result's ``kind``.
"""

from __future__ import annotations

import ipaddress
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlsplit

from .audit.drivers import AuditDriver, emit
from .audit.events import AuditEvent, AuditEventKind
from .config.models import RateLimitingConfig
from .exceptions import (
    AuthenticationError,
    DomainRestrictionError,
    IpRestrictionError,
    RateLimitExceededError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenRevokedError,
)
from .ratelimit import RateLimitDecision, RateLimiter, resolve_rate_limit
from .store.base import TokenStore
from .tokens.generators import parse_token
from .tokens.hashers import TokenHasher
from .tokens.models import Clock, Token, utcnow
from .tokens.types import TokenTypeRegistry

logger = logging.getLogger("bearerkit.guard")


# -----------------------------------------------------------------------------
# Request context
# -----------------------------------------------------------------------------


class RequestContext(ABC):
    """What the pipeline needs to know about an incoming request."""

    @abstractmethod
    def presented_token(self) -> str | None:
        """The plaintext token the client presented, if any."""

    @abstractmethod
    def source_ip(self) -> str | None:
        """The client IP address."""

    @abstractmethod
    def origin_host(self) -> str | None:
        """Host of the request's Origin (or Referer) header."""

    def user_agent(self) -> str | None:
        return None


def host_from_url(value: str | None) -> str | None:
    """Extract the host from an Origin/Referer value."""
    if not value:
        return None
    parts = urlsplit(value)
    if parts.hostname is None and not parts.scheme:
        parts = urlsplit(f"//{value}")
    return parts.hostname


@dataclass
class SimpleRequestContext(RequestContext):
    """Plain request context for callers outside an HTTP framework."""

    token: str | None = None
    ip: str | None = None
    origin: str | None = None
    referer: str | None = None
    agent: str | None = None

    def presented_token(self) -> str | None:
        return self.token

    def source_ip(self) -> str | None:
        return self.ip

    def origin_host(self) -> str | None:
        return host_from_url(self.origin) or host_from_url(self.referer)

    def user_agent(self) -> str | None:
        return self.agent


# -----------------------------------------------------------------------------
# Result
# -----------------------------------------------------------------------------


@dataclass
class AuthenticationResult:
    """Outcome of ``Guard.authenticate``.

    Attributes:
        is_authenticated: Whether every check passed
        token: The authenticated token (None on rejection)
        kind: Audit event kind describing the outcome
        message: Human-readable reason for a rejection
        rate_limit: Limiter decision, when a limit applied
    """

    is_authenticated: bool
    kind: AuditEventKind
    token: Token | None = None
    message: str | None = None
    rate_limit: RateLimitDecision | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def authenticated(cls, token: Token, rate_limit: RateLimitDecision | None = None) -> AuthenticationResult:
        return cls(
            is_authenticated=True,
            kind=AuditEventKind.AUTHENTICATED,
            token=token,
            rate_limit=rate_limit,
        )

    @classmethod
    def rejected(
        cls,
        kind: AuditEventKind,
        message: str,
        rate_limit: RateLimitDecision | None = None,
        **details: Any,
    ) -> AuthenticationResult:
        return cls(
            is_authenticated=False,
            kind=kind,
            message=message,
            rate_limit=rate_limit,
            details=details,
        )

    @property
    def retry_after(self) -> float | None:
        if self.rate_limit is None or self.rate_limit.allowed:
            return None
        return self.rate_limit.retry_after

    def __bool__(self) -> bool:
        return self.is_authenticated


# -----------------------------------------------------------------------------
# Matching helpers
# -----------------------------------------------------------------------------


def _ip_in_range(ip: str, cidr_or_ip: str) -> bool:
    """Check if an IP address is in a CIDR range or matches exactly."""
    try:
        ip_obj = ipaddress.ip_address(ip)

        if "/" in cidr_or_ip:
            network = ipaddress.ip_network(cidr_or_ip, strict=False)
            return ip_obj in network
        return ip_obj == ipaddress.ip_address(cidr_or_ip)
    except ValueError:
        return False


def _match_domain(host: str, pattern: str) -> bool:
    """Match a hostname against a domain pattern.

    Supports:
    - Exact match: "example.com"
    - Wildcard: "*.example.com" (example.com and any subdomain)
    """
    host = host.lower().strip().rstrip(".")
    pattern = pattern.lower().strip().rstrip(".")

    if host == pattern:
        return True

    if pattern.startswith("*."):
        base = pattern[2:]
        return host == base or host.endswith("." + base)

    return False


def ip_allowed(ip: str | None, allowed_ips: list[str] | None) -> bool:
    if not allowed_ips:
        return True
    if not ip:
        return False
    return any(_ip_in_range(ip, entry) for entry in allowed_ips)


def domain_allowed(host: str, allowed_domains: list[str] | None) -> bool:
    if not allowed_domains:
        return True
    return any(_match_domain(host, pattern) for pattern in allowed_domains)


# -----------------------------------------------------------------------------
# Guard
# -----------------------------------------------------------------------------


class Guard:
    """Validation pipeline for presented tokens."""

    def __init__(
        self,
        store: TokenStore,
        hasher: TokenHasher,
        audit: AuditDriver,
        token_types: TokenTypeRegistry | None = None,
        rate_limiting: RateLimitingConfig | None = None,
        limiter: RateLimiter | None = None,
        expiration: int | None = None,
        clock: Clock = utcnow,
    ):
        """Initialize the guard.

        Args:
            store: Token store to look tokens up in
            hasher: Hasher the stored digests were produced with
            audit: Driver receiving authentication events
            token_types: Registered types, for type-level rate limits
            rate_limiting: Rate limit resolution settings
            limiter: Limiter enforcing resolved limits (None = no limiting)
            expiration: Global token lifetime in minutes from creation
            clock: Time source
        """
        self.store = store
        self.hasher = hasher
        self.audit = audit
        self.token_types = token_types
        self.rate_limiting = rate_limiting or RateLimitingConfig()
        self.limiter = limiter
        self.expiration = expiration
        self.clock = clock

    def authenticate(self, request: RequestContext) -> AuthenticationResult:
        """Authenticate a request. Never raises for a rejected token."""
        presented = request.presented_token()
        if not presented:
            return AuthenticationResult.rejected(AuditEventKind.FAILED, "No token presented")

        ip = request.source_ip()
        user_agent = request.user_agent()
        token: Token | None = None

        try:
            token = self._resolve(presented)
            now = self.clock()
            self._check_revoked(token, now)
            self._check_expired(token, now)
            self._check_ip(token, ip)
            self._check_domain(token, request.origin_host())
            decision = self._check_rate_limit(token)
        except AuthenticationError as e:
            token_id = token.id if token else None
            logger.warning(f"Authentication rejected ({e.audit_event.value}) for token {token_id}: {e.message}")
            self._emit(e.audit_event, token_id, ip, user_agent, e.audit_metadata())

            decision = None
            if isinstance(e, RateLimitExceededError):
                decision = RateLimitDecision(
                    allowed=False, limit=e.limit, remaining=0, retry_after=e.retry_after
                )
            return AuthenticationResult.rejected(e.audit_event, e.message, rate_limit=decision)

        self.store.touch(token.id, now)
        token.last_used_at = now
        self._emit(AuditEventKind.AUTHENTICATED, token.id, ip, user_agent, {})
        logger.debug(f"Authenticated token {token.id}")
        return AuthenticationResult.authenticated(token, rate_limit=decision)

    # --- Steps ---

    def _resolve(self, presented: str) -> Token:
        if parse_token(presented) is None:
            raise AuthenticationError("Token is malformed")

        token = self.store.find_by_hash(self.hasher.hash(presented))
        if token is None or not self.hasher.verify(presented, token.token):
            raise TokenNotFoundError()
        return token

    def _check_revoked(self, token: Token, now: datetime) -> None:
        if token.is_revoked(now):
            raise TokenRevokedError(token.revoked_at)

    def _check_expired(self, token: Token, now: datetime) -> None:
        if token.is_expired(now):
            raise TokenExpiredError(token.expires_at)

        if self.expiration is not None:
            lifetime_end = token.created_at + timedelta(minutes=self.expiration)
            if lifetime_end <= now:
                raise TokenExpiredError(lifetime_end)

    def _check_ip(self, token: Token, ip: str | None) -> None:
        if not ip_allowed(ip, token.allowed_ips):
            raise IpRestrictionError(ip)

    def _check_domain(self, token: Token, host: str | None) -> None:
        if not token.allowed_domains:
            return
        if host is None:
            raise DomainRestrictionError(None)
        if not domain_allowed(host, token.allowed_domains):
            raise DomainRestrictionError(host)

    def _check_rate_limit(self, token: Token) -> RateLimitDecision | None:
        if self.limiter is None:
            return None

        token_type = None
        if self.token_types is not None and self.token_types.has(token.type):
            token_type = self.token_types.get(token.type)

        limit = resolve_rate_limit(token, self.rate_limiting, token_type)
        if limit is None:
            return None

        decision = self.limiter.hit(token.id, limit)
        if not decision.allowed:
            raise RateLimitExceededError(limit, decision.retry_after)
        return decision

    def _emit(
        self,
        kind: AuditEventKind,
        token_id: str | None,
        ip: str | None,
        user_agent: str | None,
        metadata: dict[str, Any],
    ) -> None:
        emit(
            self.audit,
            AuditEvent(
                token_id=token_id,
                kind=kind,
                ip_address=ip,
                user_agent=user_agent,
                metadata=metadata,
                timestamp=self.clock(),
            ),
        )
