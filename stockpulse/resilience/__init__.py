"""Resilience patterns for upstream protection.

This module contains:
- Per-client reset-window rate limiting
- Per-capability limit configuration
"""

from stockpulse.resilience.rate_limiter import (
    DEFAULT_RATE_LIMIT_CONFIG,
    RateLimitBucket,
    RateLimitConfig,
    RateLimiter,
    RateLimitRule,
)

__all__ = [
    # Rate limiter classes
    "RateLimitBucket",
    "RateLimitConfig",
    "RateLimitRule",
    "RateLimiter",
    # Rate limiter configuration
    "DEFAULT_RATE_LIMIT_CONFIG",
]
