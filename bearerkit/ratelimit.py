"""Rate limiting for authenticated tokens.

Token Bucket Algorithm:
- Each token has a bucket with a maximum capacity (burst limit)
- Tokens are added at a fixed rate (limit / 60 per second)
- Each request consumes one token
- If none are available the request is rejected with a retry hint

The limit for a token is resolved by ``resolve_rate_limit``; the limiter only
enforces whatever number it is given.
"""

from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from .config.models import RateLimitingConfig
from .tokens.models import Token
from .tokens.types import TokenType


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one limiter hit.

    Attributes:
        allowed: Whether the request may proceed
        limit: Requests per minute that were enforced
        remaining: Whole requests left in the bucket
        retry_after: Seconds until the next request would be allowed
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after: float = 0.0

    def to_headers(self) -> dict[str, str]:
        """HTTP headers describing this decision."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, math.ceil(self.retry_after)))
        return headers


@dataclass
class TokenBucket:
    """Token bucket for one rate-limit key.

    Not thread-safe on its own; the limiter holds its lock around every call.
    """

    capacity: float
    refill_rate: float  # tokens per second
    clock: Callable[[], float] = time.monotonic
    tokens: float = field(default=0.0)
    last_refill: float = field(default=0.0)

    def __post_init__(self):
        self.tokens = self.capacity
        self.last_refill = self.clock()

    def consume(self, tokens: float = 1.0) -> bool:
        """Try to consume tokens from the bucket."""
        self._refill()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def _refill(self) -> None:
        now = self.clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def get_retry_after(self) -> float:
        """Seconds until one token will be available."""
        if self.tokens >= 1.0:
            return 0.0
        if self.refill_rate <= 0:
            return 60.0
        return (1.0 - self.tokens) / self.refill_rate

    def get_remaining(self) -> int:
        return int(self.tokens)


class RateLimiter(ABC):
    """Pluggable limiter used by the Guard."""

    @abstractmethod
    def hit(self, key: str, limit: int) -> RateLimitDecision:
        """Atomically count one request against ``key`` and report the outcome."""

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget the state kept for a key."""


class TokenBucketRateLimiter(RateLimiter):
    """In-process token bucket limiter.

    Refill and consume happen under one lock, so concurrent requests against
    the same key can never both take the last token.
    """

    def __init__(self, burst_multiplier: float = 1.0, clock: Callable[[], float] = time.monotonic):
        """Initialize the rate limiter.

        Args:
            burst_multiplier: Bucket capacity as a multiple of the per-minute limit
            clock: Monotonic seconds source
        """
        self.burst_multiplier = burst_multiplier
        self.clock = clock
        self._buckets: dict[str, tuple[int, TokenBucket]] = {}
        self._lock = threading.Lock()

    def _get_bucket(self, key: str, limit: int) -> TokenBucket:
        """Get or create the bucket for a key (must be called with lock held).

        A changed limit replaces the bucket.
        """
        entry = self._buckets.get(key)
        if entry is None or entry[0] != limit:
            bucket = TokenBucket(
                capacity=limit * self.burst_multiplier,
                refill_rate=limit / 60.0,
                clock=self.clock,
            )
            self._buckets[key] = (limit, bucket)
            return bucket
        return entry[1]

    def hit(self, key: str, limit: int) -> RateLimitDecision:
        with self._lock:
            bucket = self._get_bucket(key, limit)
            allowed = bucket.consume()
            return RateLimitDecision(
                allowed=allowed,
                limit=limit,
                remaining=bucket.get_remaining(),
                retry_after=0.0 if allowed else bucket.get_retry_after(),
            )

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)


def resolve_rate_limit(
    token: Token,
    config: RateLimitingConfig,
    token_type: TokenType | None = None,
) -> int | None:
    """Resolve the per-minute limit for a token.

    Priority: the token's own override, then the type+environment default,
    then the type default, then the environment default, then the global
    default. Returns None when the token is unlimited or limiting is off.
    """
    if not config.enabled:
        return None

    if token.rate_limit_per_minute is not None:
        return token.rate_limit_per_minute

    per_type = config.type_environments.get(token.type, {})
    if token.environment in per_type:
        return per_type[token.environment]

    if token_type is not None and token_type.rate_limit is not None:
        return token_type.rate_limit

    if token.environment in config.environments:
        return config.environments[token.environment]

    return config.default
