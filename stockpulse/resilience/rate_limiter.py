"""Per-client rate limiting for upstream protection.

This module implements a reset-window request counter: each client key
tracks when its window started and how many requests it made inside it.
A request after the window has elapsed starts a new window with a count
of one.

Features:
- Per-client, per-capability limits
- Remaining-quota status for response headers
- Injectable clock for deterministic tests
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from stockpulse.data.models import Capability

logger = structlog.get_logger(__name__)


@dataclass
class RateLimitRule:
    """Maximum requests allowed in a window.

    Attributes:
        max_requests: Requests allowed per window.
        window_seconds: Window length in seconds.
    """

    max_requests: int
    window_seconds: float


@dataclass
class RateLimitConfig:
    """Default limits per capability.

    Attributes:
        quote: Live quotes (default: 30 per minute).
        historical: Candle series (default: 5 per 2 minutes).
        sentiment: Fused sentiment (default: 10 per minute).
    """

    quote: RateLimitRule = field(default_factory=lambda: RateLimitRule(30, 60.0))
    historical: RateLimitRule = field(default_factory=lambda: RateLimitRule(5, 120.0))
    sentiment: RateLimitRule = field(default_factory=lambda: RateLimitRule(10, 60.0))

    def get_rule(self, capability: Capability) -> RateLimitRule:
        """Get the rule for a capability."""
        rule_map = {
            Capability.QUOTE: self.quote,
            Capability.HISTORICAL: self.historical,
            Capability.SENTIMENT: self.sentiment,
        }
        return rule_map[capability]


# Default configuration
DEFAULT_RATE_LIMIT_CONFIG = RateLimitConfig()


@dataclass
class RateLimitBucket:
    """Request counter for one client key.

    Attributes:
        client_key: Identity of the caller (plus capability scope).
        window_start: Clock reading when the current window began.
        count: Requests seen in the current window.
    """

    client_key: str
    window_start: float
    count: int = 1

    def window_elapsed(self, now: float, window_seconds: float) -> bool:
        """Whether ``now`` falls outside the current window."""
        return now >= self.window_start + window_seconds


class RateLimiter:
    """Per-client request counter with reset-window semantics.

    Example:
        limiter = RateLimiter()

        if not limiter.allow("203.0.113.7", max_requests=30, window_seconds=60):
            # serve the latest cache entry instead of calling upstream
            ...
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize rate limiter.

        Args:
            config: Per-capability limits. Uses defaults if not provided.
            clock: Monotonic time source, injectable for tests.
        """
        self.config = config or DEFAULT_RATE_LIMIT_CONFIG
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}

    def allow(self, client_key: str, max_requests: int, window_seconds: float) -> bool:
        """Count a request and decide whether it is allowed.

        Args:
            client_key: Identity of the caller.
            max_requests: Requests allowed per window.
            window_seconds: Window length in seconds.

        Returns:
            True if the request is within quota, False once the count
            exceeds ``max_requests`` inside the window.
        """
        now = self._clock()
        bucket = self._buckets.get(client_key)

        if bucket is None or bucket.window_elapsed(now, window_seconds):
            self._buckets[client_key] = RateLimitBucket(
                client_key=client_key, window_start=now, count=1
            )
            return True

        bucket.count += 1
        if bucket.count > max_requests:
            logger.warning(
                "rate_limit_exceeded",
                client_key=client_key,
                count=bucket.count,
                limit=max_requests,
            )
            return False
        return True

    def allow_capability(self, client_key: str, capability: Capability) -> bool:
        """Apply the configured rule for a capability.

        Buckets are scoped per capability so quote polling does not eat
        into the sentiment quota.
        """
        rule = self.config.get_rule(capability)
        return self.allow(
            self.scoped_key(client_key, capability),
            rule.max_requests,
            rule.window_seconds,
        )

    @staticmethod
    def scoped_key(client_key: str, capability: Capability) -> str:
        """Bucket key for a client and capability."""
        return f"{capability.value}:{client_key}"

    def retry_after(self, client_key: str, window_seconds: float) -> float:
        """Seconds until the client's current window resets."""
        bucket = self._buckets.get(client_key)
        if bucket is None:
            return 0.0
        return max(0.0, bucket.window_start + window_seconds - self._clock())

    def status(self, client_key: str, max_requests: int, window_seconds: float) -> dict[str, Any]:
        """Get quota status for a client.

        Args:
            client_key: Identity of the caller.
            max_requests: Requests allowed per window.
            window_seconds: Window length in seconds.

        Returns:
            Dict with limit, remaining requests and seconds until reset.
        """
        bucket = self._buckets.get(client_key)
        now = self._clock()
        if bucket is None or bucket.window_elapsed(now, window_seconds):
            return {"limit": max_requests, "remaining": max_requests, "reset_in": 0.0}
        return {
            "limit": max_requests,
            "remaining": max(0, max_requests - bucket.count),
            "reset_in": round(bucket.window_start + window_seconds - now, 3),
        }

    def bucket(self, client_key: str) -> RateLimitBucket | None:
        """Get the bucket for a client key, if one exists."""
        return self._buckets.get(client_key)

    def reset(self) -> None:
        """Reset all buckets (for testing)."""
        self._buckets.clear()
