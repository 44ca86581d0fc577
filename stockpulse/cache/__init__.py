"""Process-wide cache for resolved market data.

This module contains:
- CacheStore with get-if-fresh / set semantics and a periodic reaper
- CacheKeyBuilder for capability + normalized parameter keys
- TTL configurations per capability
- Cache metrics tracking
"""

from stockpulse.cache.store import (
    DEFAULT_CACHE_CONFIG,
    MARKET_SUFFIXES,
    CacheConfig,
    CacheEntry,
    CacheKeyBuilder,
    CacheLookup,
    CacheMetrics,
    CacheStore,
    normalize_symbol,
)

__all__ = [
    # Core classes
    "CacheConfig",
    "CacheEntry",
    "CacheKeyBuilder",
    "CacheLookup",
    "CacheMetrics",
    "CacheStore",
    # Configuration
    "DEFAULT_CACHE_CONFIG",
    "MARKET_SUFFIXES",
    # Utilities
    "normalize_symbol",
]
