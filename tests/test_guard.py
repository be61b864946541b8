"""Tests for the authentication pipeline."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from bearerkit.audit import AuditEventKind, MemoryAuditDriver
from bearerkit.config import BearerConfig, RateLimitingConfig
from bearerkit.guard import Guard, SimpleRequestContext, _ip_in_range, _match_domain, host_from_url
from bearerkit.manager import BearerManager
from bearerkit.ratelimit import TokenBucketRateLimiter
from bearerkit.tokens.hashers import Sha256TokenHasher


def request(token, ip="203.0.113.7", **kwargs):
    return SimpleRequestContext(token=token, ip=ip, **kwargs)


class TestMatching:
    """Tests for IP and domain matching helpers."""

    def test_ip_exact(self):
        """Test exact IP matching."""
        assert _ip_in_range("10.0.0.1", "10.0.0.1")
        assert not _ip_in_range("10.0.0.2", "10.0.0.1")

    def test_ip_cidr(self):
        """Test CIDR ranges for IPv4 and IPv6."""
        assert _ip_in_range("192.168.1.50", "192.168.1.0/24")
        assert not _ip_in_range("192.168.2.1", "192.168.1.0/24")
        assert _ip_in_range("2001:db8::1", "2001:db8::/32")

    def test_ip_invalid(self):
        """Test garbage input never matches."""
        assert not _ip_in_range("not-an-ip", "10.0.0.0/8")
        assert not _ip_in_range("10.0.0.1", "garbage")

    def test_domain_exact_and_wildcard(self):
        """Test exact matching and wildcards covering the domain and its subdomains."""
        assert _match_domain("example.com", "example.com")
        assert _match_domain("App.Example.com", "*.example.com")
        assert _match_domain("example.com", "*.example.com")
        assert not _match_domain("badexample.com", "*.example.com")

    def test_host_from_url(self):
        """Test host extraction from Origin and Referer values."""
        assert host_from_url("https://app.example.com") == "app.example.com"
        assert host_from_url("https://example.com:8443/path?q=1") == "example.com"
        assert host_from_url("example.com") == "example.com"
        assert host_from_url(None) is None

    def test_origin_before_referer(self):
        """Test the Origin header takes precedence over Referer."""
        context = SimpleRequestContext(origin="https://a.com", referer="https://b.com/page")
        assert context.origin_host() == "a.com"
        assert SimpleRequestContext(referer="https://b.com/page").origin_host() == "b.com"


class TestPipeline:
    """Tests for Guard.authenticate."""

    def test_authenticated(self, manager, audit, clock):
        """Test a valid token authenticates and is touched."""
        issued = manager.issue("sk", "svc")
        result = manager.authenticate(request(issued.plain_text_token))

        assert result.is_authenticated
        assert result.kind == AuditEventKind.AUTHENTICATED
        assert result.token.id == issued.access_token.id
        assert manager.store.find(issued.access_token.id).last_used_at == clock()
        event = audit.events_for(issued.access_token.id)[-1]
        assert event.kind == AuditEventKind.AUTHENTICATED
        assert event.ip_address == "203.0.113.7"

    def test_missing_token_no_event(self, manager, audit):
        """Test a request without a token is rejected silently."""
        audit.clear()
        result = manager.authenticate(request(None))
        assert not result
        assert result.kind == AuditEventKind.FAILED
        assert audit.events == []

    def test_malformed_token(self, manager, audit):
        """Test a structurally invalid token fails before lookup."""
        audit.clear()
        result = manager.authenticate(request("garbage"))
        assert result.kind == AuditEventKind.FAILED
        assert [e.kind for e in audit.events] == [AuditEventKind.FAILED]

    def test_unknown_token(self, manager, audit):
        """Test an unknown token is reported as failed."""
        result = manager.authenticate(request("sk_test_doesnotexist123"))
        assert result.kind == AuditEventKind.FAILED
        assert result.token is None
        assert audit.events[-1].token_id is None

    def test_revoked(self, manager):
        """Test a revoked token is rejected."""
        issued = manager.issue("sk", "svc")
        manager.revoke(issued.access_token)
        assert manager.authenticate(request(issued.plain_text_token)).kind == AuditEventKind.REVOKED

    def test_revoked_before_ip(self, manager):
        """Test revocation is reported ahead of an IP block."""
        issued = manager.issue("sk", "svc", allowed_ips=["10.0.0.1"])
        manager.revoke(issued.access_token)
        result = manager.authenticate(request(issued.plain_text_token, ip="192.0.2.1"))
        assert result.kind == AuditEventKind.REVOKED

    def test_expired(self, manager, clock):
        """Test an expired token is rejected."""
        issued = manager.issue("sk", "svc", expires_at=clock() + timedelta(minutes=5))
        clock.advance(minutes=5)
        assert manager.authenticate(request(issued.plain_text_token)).kind == AuditEventKind.EXPIRED

    def test_global_expiration(self, store, audit, clock):
        """Test the global lifetime setting expires old tokens."""
        manager = BearerManager(
            config=BearerConfig(expiration=60), store=store, audit_driver=audit, clock=clock
        )
        issued = manager.issue("sk", "svc")
        assert manager.authenticate(request(issued.plain_text_token))
        clock.advance(minutes=60)
        assert manager.authenticate(request(issued.plain_text_token)).kind == AuditEventKind.EXPIRED

    def test_ip_allowed_cidr(self, manager):
        """Test an IP inside an allowed range passes."""
        issued = manager.issue("sk", "svc", allowed_ips=["203.0.113.0/24"])
        assert manager.authenticate(request(issued.plain_text_token))

    def test_ip_blocked(self, manager, audit):
        """Test an IP outside the allow-list is blocked."""
        issued = manager.issue("sk", "svc", allowed_ips=["10.0.0.0/8"])
        result = manager.authenticate(request(issued.plain_text_token))
        assert result.kind == AuditEventKind.IP_BLOCKED
        assert audit.events[-1].metadata["ip"] == "203.0.113.7"

    def test_domain_wildcard(self, manager):
        """Test a wildcard domain admits subdomains."""
        issued = manager.issue("pk", "web", allowed_domains=["*.example.com"])
        result = manager.authenticate(
            request(issued.plain_text_token, origin="https://shop.example.com")
        )
        assert result

    def test_domain_wildcard_matches_apex(self, manager):
        """Test a wildcard domain also admits the bare domain."""
        issued = manager.issue("pk", "web", allowed_domains=["*.example.com"])
        result = manager.authenticate(request(issued.plain_text_token, origin="https://example.com"))
        assert result.is_authenticated

    def test_domain_blocked(self, manager):
        """Test a foreign origin is blocked."""
        issued = manager.issue("pk", "web", allowed_domains=["example.com"])
        result = manager.authenticate(request(issued.plain_text_token, origin="https://evil.test"))
        assert result.kind == AuditEventKind.DOMAIN_BLOCKED

    def test_domain_missing_header(self, manager):
        """Test a domain-restricted token needs an Origin or Referer."""
        issued = manager.issue("pk", "web", allowed_domains=["example.com"])
        assert manager.authenticate(request(issued.plain_text_token)).kind == AuditEventKind.DOMAIN_BLOCKED

    def test_ip_before_domain(self, manager):
        """Test IP checks run before domain checks."""
        issued = manager.issue("pk", "web", allowed_ips=["10.0.0.1"], allowed_domains=["example.com"])
        result = manager.authenticate(request(issued.plain_text_token, origin="https://evil.test"))
        assert result.kind == AuditEventKind.IP_BLOCKED

    def test_audit_failure_does_not_break_authentication(self, manager, store, clock):
        """Test a failing audit driver is logged, not raised."""
        broken = MagicMock()
        broken.log.side_effect = RuntimeError("disk full")
        issued = manager.issue("sk", "svc")

        guard = Guard(store=store, hasher=manager.token_hasher(), audit=broken, clock=clock)
        assert guard.authenticate(request(issued.plain_text_token)).is_authenticated


class TestRateLimiting:
    """Tests for the rate limit step."""

    @pytest.fixture
    def limited(self, store, audit, clock, monotonic):
        limiter = TokenBucketRateLimiter(clock=monotonic)
        return BearerManager(store=store, audit_driver=audit, clock=clock, limiter=limiter)

    def test_rate_limited(self, limited, monotonic):
        """Test the limit is enforced with a retry hint."""
        issued = limited.issue("sk", "svc", rate_limit_per_minute=2)
        assert limited.authenticate(request(issued.plain_text_token))
        assert limited.authenticate(request(issued.plain_text_token))

        result = limited.authenticate(request(issued.plain_text_token))
        assert result.kind == AuditEventKind.RATE_LIMITED
        assert result.retry_after == pytest.approx(30.0)

        monotonic.advance(30)
        assert limited.authenticate(request(issued.plain_text_token))

    def test_rate_limit_reported_on_success(self, limited):
        """Test successful results carry the limiter decision."""
        issued = limited.issue("sk", "svc", rate_limit_per_minute=5)
        result = limited.authenticate(request(issued.plain_text_token))
        assert result.rate_limit.limit == 5
        assert result.rate_limit.remaining == 4

    def test_unlimited_when_disabled(self, store, clock):
        """Test no limiting happens when rate limiting is off."""
        config = BearerConfig(rate_limiting=RateLimitingConfig(enabled=False))
        guard_manager = BearerManager(config=config, store=store, clock=clock)
        issued = guard_manager.issue("sk", "svc", rate_limit_per_minute=1)
        for _ in range(5):
            assert guard_manager.authenticate(request(issued.plain_text_token))


class TestStandaloneGuard:
    """Tests for using Guard without a manager."""

    def test_guard_with_store(self, manager, store, clock):
        """Test a guard built by hand authenticates stored tokens."""
        issued = manager.issue("sk", "svc")
        audit = MemoryAuditDriver()
        guard = Guard(store=store, hasher=Sha256TokenHasher(), audit=audit, clock=clock)
        result = guard.authenticate(request(issued.plain_text_token))
        assert result.is_authenticated
        assert audit.events[0].kind == AuditEventKind.AUTHENTICATED
