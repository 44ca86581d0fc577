"""In-process cache store with capability-specific TTLs.

This module provides the process-wide cache shared by every resolver.

Features:
- Per-entry TTL supplied at set time (defaults per capability)
- Stale entries are kept and reported, so they can serve as last-resort data
- Periodic reaper that drops entries far past their TTL
- Cache metrics tracking (hits, stale hits, misses, evictions)
"""

import asyncio
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from stockpulse.data.models import Capability
from stockpulse.errors import InvalidSymbolError

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

MARKET_SUFFIXES = (".NS", ".BO")


SYMBOL_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9&_\-]{0,19}$")


def normalize_symbol(symbol: str) -> str:
    """Upper-case a symbol and strip its market suffix.

    Args:
        symbol: Raw symbol (e.g., "reliance.ns").

    Returns:
        Normalized symbol (e.g., "RELIANCE").

    Raises:
        InvalidSymbolError: If the symbol is empty or malformed.
    """
    if not isinstance(symbol, str):
        raise InvalidSymbolError(symbol)

    normalized = symbol.strip().upper()
    for suffix in MARKET_SUFFIXES:
        if normalized.endswith(suffix):
            normalized = normalized[: -len(suffix)]
            break

    if not SYMBOL_PATTERN.match(normalized):
        raise InvalidSymbolError(symbol)
    return normalized


@dataclass
class CacheConfig:
    """Default TTLs per cached capability, in seconds.

    Attributes:
        quote_ttl: Live quotes (default: 5 s).
        historical_ttl: Candle series (default: 60 s).
        price_signal_ttl: Price-action sentiment score (default: 60 s).
        news_signal_ttl: News sentiment score (default: 1 hour).
        social_signal_ttl: Social sentiment score (default: 15 min).
        sentiment_ttl: Fused sentiment (default: 5 min).
        default_ttl: Anything else (default: 60 s).
    """

    quote_ttl: float = 5.0
    historical_ttl: float = 60.0
    price_signal_ttl: float = 60.0
    news_signal_ttl: float = 3600.0
    social_signal_ttl: float = 900.0
    sentiment_ttl: float = 300.0
    default_ttl: float = 60.0

    def get_ttl(self, capability: Capability) -> float:
        """Get TTL for a capability."""
        ttl_map = {
            Capability.QUOTE: self.quote_ttl,
            Capability.HISTORICAL: self.historical_ttl,
            Capability.SENTIMENT: self.sentiment_ttl,
        }
        return ttl_map.get(capability, self.default_ttl)

    def get_signal_ttl(self, signal: str) -> float:
        """Get TTL for one sentiment input ("price", "news" or "social")."""
        ttl_map = {
            "price": self.price_signal_ttl,
            "news": self.news_signal_ttl,
            "social": self.social_signal_ttl,
        }
        return ttl_map.get(signal, self.default_ttl)


# Default cache configuration
DEFAULT_CACHE_CONFIG = CacheConfig()


@dataclass
class CacheEntry:
    """A cached value and when it was written.

    Attributes:
        key: Cache key.
        value: Cached payload.
        written_at: Clock reading at write time.
        ttl: Time-to-live in seconds.
    """

    key: str
    value: Any
    written_at: float
    ttl: float

    def age(self, now: float) -> float:
        """Seconds since the entry was written."""
        return now - self.written_at

    def is_fresh(self, now: float) -> bool:
        """An entry is fresh iff ``now - written_at < ttl``."""
        return self.age(now) < self.ttl


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache read.

    Attributes:
        value: Cached payload, or None when not found.
        found: Whether any entry exists for the key.
        fresh: Whether the entry is within its TTL.
        age: Seconds since the entry was written, if found.
    """

    value: Any = None
    found: bool = False
    fresh: bool = False
    age: float | None = None


MISS = CacheLookup()


@dataclass
class CacheMetrics:
    """Metrics for cache performance.

    Attributes:
        hits: Reads that found a fresh entry.
        stale_hits: Reads that found an expired entry.
        misses: Reads that found nothing.
        writes: Number of set calls.
        evictions: Entries removed by invalidation or the reaper.
    """

    hits: int = 0
    stale_hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0

    @property
    def total_requests(self) -> int:
        """Total number of cache reads."""
        return self.hits + self.stale_hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Fresh hit rate as a percentage."""
        if self.total_requests == 0:
            return 0.0
        return (self.hits / self.total_requests) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "hits": self.hits,
            "stale_hits": self.stale_hits,
            "misses": self.misses,
            "writes": self.writes,
            "evictions": self.evictions,
            "total_requests": self.total_requests,
            "hit_rate": round(self.hit_rate, 2),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self.hits = 0
        self.stale_hits = 0
        self.misses = 0
        self.writes = 0
        self.evictions = 0


class CacheKeyBuilder:
    """Builder for consistent cache key generation."""

    PREFIX = "stockpulse"

    @classmethod
    def build(cls, capability: Capability | str, symbol: str, *parts: str) -> str:
        """Build a key from a capability and normalized parameters.

        Args:
            capability: Capability being cached.
            symbol: Symbol; normalized before use.
            parts: Extra parameters (interval, range, signal name, ...).

        Returns:
            Cache key string.
        """
        name = capability.value if isinstance(capability, Capability) else capability
        key = f"{cls.PREFIX}:{name}:{normalize_symbol(symbol)}"
        if parts:
            key = f"{key}:{':'.join(parts)}"
        return key

    @classmethod
    def quote(cls, symbol: str) -> str:
        """Build cache key for a quote."""
        return cls.build(Capability.QUOTE, symbol)

    @classmethod
    def historical(cls, symbol: str, interval: str = "1d", range_: str = "1mo") -> str:
        """Build cache key for a candle series."""
        return cls.build(Capability.HISTORICAL, symbol, interval, range_)

    @classmethod
    def signal(cls, symbol: str, signal: str) -> str:
        """Build cache key for one sentiment input."""
        return cls.build(Capability.SENTIMENT, symbol, "signal", signal)

    @classmethod
    def sentiment(cls, symbol: str) -> str:
        """Build cache key for a fused sentiment."""
        return cls.build(Capability.SENTIMENT, symbol, "fused")

    @staticmethod
    def symbol_of(key: str) -> str | None:
        """Extract the symbol segment from a key built by this class."""
        parts = key.split(":")
        return parts[2] if len(parts) > 2 else None


class CacheStore:
    """Capability-keyed store of (value, timestamp) pairs.

    No eviction beyond TTL checking: stale entries stay readable until the
    reaper removes them or they are overwritten.

    Example:
        cache = CacheStore()
        cache.set(CacheKeyBuilder.quote("INFY"), quote, ttl=5)

        lookup = cache.get(CacheKeyBuilder.quote("INFY"))
        if lookup.fresh:
            return lookup.value
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            config: Default TTLs per capability.
            clock: Monotonic time source, injectable for tests.
        """
        self.config = config or DEFAULT_CACHE_CONFIG
        self.metrics = CacheMetrics()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._reaper: asyncio.Task[None] | None = None
        self._logger = logger.bind(component="cache_store")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def now(self) -> float:
        """Current reading of the store's clock."""
        return self._clock()

    def get(self, key: str) -> CacheLookup:
        """Read an entry, fresh or stale.

        Args:
            key: Cache key.

        Returns:
            CacheLookup describing whether the entry exists and is fresh.
        """
        entry = self._entries.get(key)
        if entry is None:
            self.metrics.misses += 1
            self._logger.debug("cache_miss", key=key)
            return MISS

        now = self._clock()
        fresh = entry.is_fresh(now)
        if fresh:
            self.metrics.hits += 1
            self._logger.debug("cache_hit", key=key)
        else:
            self.metrics.stale_hits += 1
            self._logger.debug("cache_stale_hit", key=key, age=round(entry.age(now), 2))

        return CacheLookup(value=entry.value, found=True, fresh=fresh, age=entry.age(now))

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        capability: Capability | None = None,
    ) -> None:
        """Write or overwrite an entry.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: TTL in seconds. If not provided, uses capability or default.
            capability: Capability for TTL lookup.
        """
        if ttl is None:
            ttl = self.config.get_ttl(capability) if capability else self.config.default_ttl

        self._entries[key] = CacheEntry(
            key=key, value=value, written_at=self._clock(), ttl=ttl
        )
        self.metrics.writes += 1
        self._logger.debug("cache_set", key=key, ttl=ttl)

    def invalidate(self, key: str) -> bool:
        """Remove an entry.

        Args:
            key: Cache key.

        Returns:
            True if an entry was removed.
        """
        removed = self._entries.pop(key, None) is not None
        if removed:
            self.metrics.evictions += 1
        self._logger.debug("cache_invalidate", key=key, removed=removed)
        return removed

    def invalidate_symbol(self, symbol: str) -> int:
        """Remove every entry for a symbol across capabilities.

        Args:
            symbol: Symbol; normalized before matching.

        Returns:
            Number of entries removed.
        """
        target = normalize_symbol(symbol)
        keys = [key for key in self._entries if CacheKeyBuilder.symbol_of(key) == target]
        for key in keys:
            del self._entries[key]
        self.metrics.evictions += len(keys)
        self._logger.info("cache_symbol_invalidated", symbol=symbol, deleted_count=len(keys))
        return len(keys)

    def sweep(self, staleness_factor: float = 12.0) -> int:
        """Drop entries whose age exceeds ``ttl * staleness_factor``.

        Args:
            staleness_factor: Multiple of the TTL an entry may age before removal.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.age(now) >= entry.ttl * staleness_factor
        ]
        for key in expired:
            del self._entries[key]
        self.metrics.evictions += len(expired)
        if expired:
            self._logger.info("cache_swept", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def clear(self) -> None:
        """Remove every entry (for testing)."""
        self._entries.clear()

    # =========================================================================
    # Reaper
    # =========================================================================

    @property
    def reaper_running(self) -> bool:
        """Whether the periodic sweep task is active."""
        return self._reaper is not None and not self._reaper.done()

    def start_reaper(self, interval: float = 300.0, staleness_factor: float = 12.0) -> None:
        """Start sweeping periodically on the running event loop.

        Args:
            interval: Seconds between sweeps.
            staleness_factor: Passed to ``sweep``.
        """
        if self.reaper_running:
            return

        async def _run() -> None:
            while True:
                await asyncio.sleep(interval)
                self.sweep(staleness_factor)

        self._reaper = asyncio.get_running_loop().create_task(_run())
        self._logger.info("cache_reaper_started", interval=interval, factor=staleness_factor)

    async def stop_reaper(self) -> None:
        """Cancel the periodic sweep task, if running."""
        if self._reaper is None:
            return
        self._reaper.cancel()
        try:
            await self._reaper
        except asyncio.CancelledError:
            pass
        self._reaper = None
        self._logger.info("cache_reaper_stopped")

    def get_metrics(self) -> dict[str, Any]:
        """Get cache metrics.

        Returns:
            Dictionary of cache metrics.
        """
        return {**self.metrics.to_dict(), "entries": len(self._entries)}

    def reset_metrics(self) -> None:
        """Reset cache metrics."""
        self.metrics.reset()
