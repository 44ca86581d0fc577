"""Tests for rate limiter implementation."""

from stockpulse.data.models import Capability
from stockpulse.resilience.rate_limiter import (
    DEFAULT_RATE_LIMIT_CONFIG,
    RateLimitBucket,
    RateLimitConfig,
    RateLimiter,
    RateLimitRule,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimitConfig:
    """Tests for RateLimitConfig."""

    def test_default_values(self) -> None:
        """Test default limits per capability."""
        config = RateLimitConfig()
        assert config.quote == RateLimitRule(30, 60.0)
        assert config.historical == RateLimitRule(5, 120.0)
        assert config.sentiment == RateLimitRule(10, 60.0)

    def test_get_rule(self) -> None:
        """Test rule lookup by capability."""
        config = RateLimitConfig(quote=RateLimitRule(2, 1.0))
        assert config.get_rule(Capability.QUOTE).max_requests == 2
        assert config.get_rule(Capability.HISTORICAL).window_seconds == 120.0

    def test_instances_do_not_share_rules(self) -> None:
        """Test each config gets its own rule objects."""
        a, b = RateLimitConfig(), RateLimitConfig()
        a.quote.max_requests = 1
        assert b.quote.max_requests == 30

    def test_default_config_instance(self) -> None:
        """Test default config instance exists."""
        assert DEFAULT_RATE_LIMIT_CONFIG.quote.max_requests == 30


class TestRateLimitBucket:
    """Tests for RateLimitBucket."""

    def test_window_elapsed(self) -> None:
        """Test the window boundary is inclusive of its end."""
        bucket = RateLimitBucket(client_key="c", window_start=10.0)
        assert bucket.window_elapsed(69.9, 60) is False
        assert bucket.window_elapsed(70.0, 60) is True


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_first_request_allowed(self) -> None:
        """Test a new client is always allowed."""
        limiter = RateLimiter(clock=FakeClock())
        assert limiter.allow("client", max_requests=1, window_seconds=60) is True
        assert limiter.bucket("client").count == 1

    def test_burst_then_deny_then_reset(self) -> None:
        """Test ten requests pass, the eleventh fails, and a new window allows."""
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)

        for _ in range(10):
            assert limiter.allow("client", max_requests=10, window_seconds=60) is True
            clock.advance(0.1)

        assert limiter.allow("client", max_requests=10, window_seconds=60) is False

        clock.advance(61)
        assert limiter.allow("client", max_requests=10, window_seconds=60) is True
        assert limiter.bucket("client").count == 1

    def test_denied_requests_keep_counting(self) -> None:
        """Test requests beyond the limit stay denied within the window."""
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        for _ in range(3):
            limiter.allow("client", max_requests=2, window_seconds=60)

        assert limiter.allow("client", max_requests=2, window_seconds=60) is False
        assert limiter.bucket("client").count == 4

    def test_clients_are_independent(self) -> None:
        """Test one client's usage does not affect another."""
        limiter = RateLimiter(clock=FakeClock())
        assert limiter.allow("a", max_requests=1, window_seconds=60) is True
        assert limiter.allow("a", max_requests=1, window_seconds=60) is False
        assert limiter.allow("b", max_requests=1, window_seconds=60) is True

    def test_window_is_reset_not_sliding(self) -> None:
        """Test the window restarts from the first request after expiry."""
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        limiter.allow("c", max_requests=2, window_seconds=10)
        clock.advance(9)
        limiter.allow("c", max_requests=2, window_seconds=10)
        assert limiter.allow("c", max_requests=2, window_seconds=10) is False

        clock.advance(1)
        assert limiter.allow("c", max_requests=2, window_seconds=10) is True

    def test_allow_capability_scopes_buckets(self) -> None:
        """Test quote usage does not consume the sentiment quota."""
        config = RateLimitConfig(
            quote=RateLimitRule(1, 60.0),
            sentiment=RateLimitRule(1, 60.0),
        )
        limiter = RateLimiter(config=config, clock=FakeClock())

        assert limiter.allow_capability("ip", Capability.QUOTE) is True
        assert limiter.allow_capability("ip", Capability.QUOTE) is False
        assert limiter.allow_capability("ip", Capability.SENTIMENT) is True

    def test_scoped_key(self) -> None:
        """Test scoped keys include the capability."""
        assert RateLimiter.scoped_key("ip", Capability.HISTORICAL) == "historical:ip"

    def test_retry_after(self) -> None:
        """Test retry_after counts down to the window end."""
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        limiter.allow("c", max_requests=1, window_seconds=60)
        clock.advance(15)
        assert limiter.retry_after("c", 60) == 45
        assert limiter.retry_after("unknown", 60) == 0.0

    def test_status(self) -> None:
        """Test status reports remaining quota."""
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        assert limiter.status("c", 5, 60)["remaining"] == 5

        limiter.allow("c", 5, 60)
        limiter.allow("c", 5, 60)
        status = limiter.status("c", 5, 60)
        assert status["limit"] == 5
        assert status["remaining"] == 3

        clock.advance(60)
        assert limiter.status("c", 5, 60)["remaining"] == 5

    def test_reset(self) -> None:
        """Test reset clears all buckets."""
        limiter = RateLimiter(clock=FakeClock())
        limiter.allow("c", 1, 60)
        limiter.reset()
        assert limiter.bucket("c") is None
