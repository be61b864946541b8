"""Tests for rate limiting."""

import threading

import pytest

from bearerkit.config import RateLimitingConfig
from bearerkit.ratelimit import RateLimitDecision, TokenBucket, TokenBucketRateLimiter, resolve_rate_limit
from bearerkit.tokens import DEFAULT_TOKEN_TYPES, Token


def make_token(**fields) -> Token:
    defaults = {
        "id": "t-1",
        "type": "sk",
        "prefix": "sk",
        "environment": "live",
        "name": "svc",
        "token": "digest",
    }
    defaults.update(fields)
    return Token(**defaults)


class TestTokenBucket:
    """Tests for TokenBucket class."""

    def test_bucket_creation(self, monotonic):
        """Test bucket starts full."""
        bucket = TokenBucket(capacity=10, refill_rate=1.0, clock=monotonic)
        assert bucket.get_remaining() == 10

    def test_bucket_consume(self, monotonic):
        """Test consuming tokens until empty."""
        bucket = TokenBucket(capacity=3, refill_rate=1.0, clock=monotonic)
        assert bucket.consume()
        assert bucket.consume()
        assert bucket.consume()
        assert not bucket.consume()

    def test_bucket_refill(self, monotonic):
        """Test tokens come back over time without exceeding capacity."""
        bucket = TokenBucket(capacity=2, refill_rate=1.0, clock=monotonic)
        bucket.consume()
        bucket.consume()
        monotonic.advance(1)
        assert bucket.consume()
        monotonic.advance(100)
        assert bucket.consume()
        assert bucket.get_remaining() == 1

    def test_retry_after(self, monotonic):
        """Test the retry hint counts down to the next token."""
        bucket = TokenBucket(capacity=1, refill_rate=0.5, clock=monotonic)
        bucket.consume()
        bucket.consume()
        assert bucket.get_retry_after() == pytest.approx(2.0)


class TestTokenBucketRateLimiter:
    """Tests for the keyed limiter."""

    def test_limit_enforced(self, monotonic):
        """Test the per-minute limit is enforced per key."""
        limiter = TokenBucketRateLimiter(clock=monotonic)
        assert limiter.hit("a", 2).allowed
        assert limiter.hit("a", 2).allowed
        decision = limiter.hit("a", 2)
        assert not decision.allowed
        assert decision.retry_after == pytest.approx(30.0)
        assert limiter.hit("b", 2).allowed

    def test_burst_multiplier(self, monotonic):
        """Test burst capacity scales with the multiplier."""
        limiter = TokenBucketRateLimiter(burst_multiplier=2.0, clock=monotonic)
        results = [limiter.hit("a", 2).allowed for _ in range(5)]
        assert results == [True, True, True, True, False]

    def test_limit_change_replaces_bucket(self, monotonic):
        """Test a new limit starts a fresh bucket."""
        limiter = TokenBucketRateLimiter(clock=monotonic)
        limiter.hit("a", 1)
        assert not limiter.hit("a", 1).allowed
        assert limiter.hit("a", 5).allowed

    def test_reset(self, monotonic):
        """Test reset forgets a key."""
        limiter = TokenBucketRateLimiter(clock=monotonic)
        limiter.hit("a", 1)
        limiter.reset("a")
        assert limiter.hit("a", 1).allowed
        assert len(limiter) == 1

    def test_concurrent_hits_never_exceed_limit(self, monotonic):
        """Test concurrent requests cannot overspend the bucket."""
        limiter = TokenBucketRateLimiter(clock=monotonic)
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                decision = limiter.hit("shared", 50)
                with lock:
                    allowed.append(decision.allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(allowed) == 50


class TestRateLimitDecision:
    """Tests for header rendering."""

    def test_allowed_headers(self):
        """Test headers for an allowed request."""
        headers = RateLimitDecision(allowed=True, limit=10, remaining=9).to_headers()
        assert headers == {"X-RateLimit-Limit": "10", "X-RateLimit-Remaining": "9"}

    def test_rejected_headers(self):
        """Test Retry-After is rounded up to whole seconds."""
        headers = RateLimitDecision(allowed=False, limit=10, remaining=0, retry_after=2.1).to_headers()
        assert headers["Retry-After"] == "3"
        tiny = RateLimitDecision(allowed=False, limit=10, remaining=0, retry_after=0.01).to_headers()
        assert tiny["Retry-After"] == "1"


class TestResolveRateLimit:
    """Tests for limit resolution order."""

    def test_token_override_wins(self):
        """Test a token's own limit beats every default."""
        config = RateLimitingConfig(type_environments={"sk": {"live": 5}})
        assert resolve_rate_limit(make_token(rate_limit_per_minute=7), config) == 7

    def test_type_environment(self):
        """Test the type and environment default beats the type default."""
        config = RateLimitingConfig(type_environments={"pk": {"live": 5}})
        token = make_token(type="pk", prefix="pk")
        assert resolve_rate_limit(token, config, DEFAULT_TOKEN_TYPES["pk"]) == 5

    def test_type_default(self):
        """Test the type default beats the environment default."""
        token = make_token(type="pk", prefix="pk")
        assert resolve_rate_limit(token, RateLimitingConfig(), DEFAULT_TOKEN_TYPES["pk"]) == 1000

    def test_environment_default(self):
        """Test the environment default applies to unlimited types."""
        config = RateLimitingConfig(environments={"live": 300})
        assert resolve_rate_limit(make_token(), config, DEFAULT_TOKEN_TYPES["sk"]) == 300

    def test_global_default(self):
        """Test the global default is the last resort."""
        config = RateLimitingConfig(environments={}, default=60)
        assert resolve_rate_limit(make_token(), config) == 60
        assert resolve_rate_limit(make_token(), RateLimitingConfig(environments={})) is None

    def test_disabled(self):
        """Test nothing is limited when rate limiting is off."""
        config = RateLimitingConfig(enabled=False, default=60)
        assert resolve_rate_limit(make_token(rate_limit_per_minute=7), config) is None
