"""Ordered multi-source resolution with caching and rate limiting.

Resolution order for one request:

1. Fresh cache entry -> served as cached
2. Caller over quota -> latest cache entry served regardless of age, or
   (strict mode, nothing cached) RateLimited
3. Each strategy in priority order, individually time-boxed; the first
   valid payload is cached and returned
4. Every strategy failed -> stale cache entry, then the static fallback
   strategy, then AllSourcesExhausted

There are no retries: a failed strategy is logged and the next one is
tried immediately. Concurrent misses for the same key share one upstream
resolution.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from stockpulse.cache.store import CacheLookup, CacheStore
from stockpulse.data.models import (
    Capability,
    HistoricalSeries,
    Quote,
    ResolvedValue,
    SentimentSignal,
)
from stockpulse.data.strategies import SourceStrategy
from stockpulse.errors import (
    AllSourcesExhausted,
    RateLimited,
    UpstreamError,
    UpstreamInvalidPayload,
    UpstreamTimeout,
)
from stockpulse.resilience.rate_limiter import RateLimiter
from stockpulse.resolution.inflight import InFlightRegistry

logger = structlog.get_logger(__name__)

Fetcher = Callable[[SourceStrategy], Awaitable[Any]]


def validate_payload(value: Any, source: str) -> None:
    """Reject structurally valid but semantically empty payloads.

    Args:
        value: Payload returned by a strategy.
        source: Strategy name for the error.

    Raises:
        UpstreamInvalidPayload: On a missing value, a zero or non-finite
            price, an empty candle list or a non-finite score.
    """
    if value is None:
        raise UpstreamInvalidPayload(source, "empty response")

    if isinstance(value, Quote):
        if not math.isfinite(value.price) or value.price <= 0:
            raise UpstreamInvalidPayload(source, f"bad price {value.price}")
    elif isinstance(value, HistoricalSeries):
        if not value.candles:
            raise UpstreamInvalidPayload(source, "no candles")
        if any(not math.isfinite(c.close) for c in value.candles):
            raise UpstreamInvalidPayload(source, "non-finite close")
    elif isinstance(value, SentimentSignal):
        if not math.isfinite(value.score):
            raise UpstreamInvalidPayload(source, "non-finite score")


class FallbackResolver:
    """Resolves one capability across prioritized strategies.

    Example:
        resolver = FallbackResolver(
            Capability.QUOTE,
            [PrimaryExchangeStrategy(), SecondaryVendorStrategy()],
            cache,
            rate_limiter,
            static=StaticFallbackStrategy(),
        )
        result = await resolver.resolve(
            CacheKeyBuilder.quote("INFY"),
            lambda strategy: strategy.fetch_quote("INFY"),
            client_key="203.0.113.7",
        )
        print(f"{result.value.price} via {result.source}")
    """

    def __init__(
        self,
        capability: Capability,
        strategies: Sequence[SourceStrategy],
        cache: CacheStore,
        rate_limiter: RateLimiter | None = None,
        *,
        static: SourceStrategy | None = None,
        ttl: float | None = None,
        strict_rate_limit: bool = False,
        inflight: InFlightRegistry | None = None,
        name: str | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            capability: Capability resolved; selects strategies, TTL and
                rate-limit rule.
            strategies: Strategies in priority order.
            cache: Shared cache store.
            rate_limiter: Shared rate limiter; None disables limiting.
            static: Last-resort strategy used after every strategy and the
                stale cache have failed. None means exhaustion raises.
            ttl: TTL for cached results. Defaults to the capability TTL.
            strict_rate_limit: Raise RateLimited for over-quota callers
                with nothing cached instead of calling upstream.
            inflight: Registry for coalescing identical misses.
            name: Label used in logs.
        """
        self.capability = capability
        self.strategies = list(strategies)
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.static = static
        self.ttl = ttl if ttl is not None else cache.config.get_ttl(capability)
        self.strict_rate_limit = strict_rate_limit
        self.inflight = inflight if inflight is not None else InFlightRegistry()
        self.name = name or capability.value
        self._logger = logger.bind(component="fallback_resolver", resolver=self.name)

        self._stats = {
            "cache_hits": 0,
            "upstream_success": 0,
            "strategy_failures": 0,
            "rate_limited": 0,
            "stale_fallback": 0,
            "static_fallback": 0,
            "exhausted": 0,
        }

    @property
    def stats(self) -> dict[str, int]:
        """Get resolution statistics."""
        return self._stats.copy()

    def reset_stats(self) -> None:
        """Reset resolution statistics."""
        for key in self._stats:
            self._stats[key] = 0

    async def resolve(
        self,
        key: str,
        fetch: Fetcher,
        *,
        client_key: str | None = None,
    ) -> ResolvedValue:
        """Resolve a value for a cache key.

        Args:
            key: Cache key (capability plus normalized parameters).
            fetch: Calls the right fetch method on a strategy.
            client_key: Caller identity for rate limiting; None skips it.

        Returns:
            ResolvedValue tagged with source and degradation flags.

        Raises:
            RateLimited: Strict mode only, when over quota with no cache.
            AllSourcesExhausted: When every strategy failed, nothing is
                cached and no static fallback is configured.
        """
        lookup = self.cache.get(key)
        if lookup.fresh:
            self._stats["cache_hits"] += 1
            return self._from_cache(lookup)

        over_quota = False
        if client_key is not None and self.rate_limiter is not None:
            if not self.rate_limiter.allow_capability(client_key, self.capability):
                over_quota = True
                self._stats["rate_limited"] += 1

                if lookup.found:
                    self._logger.info("rate_limited_cache_served", key=key, client_key=client_key)
                    return self._from_cache(lookup, rate_limited=True)

                if self.strict_rate_limit:
                    rule = self.rate_limiter.config.get_rule(self.capability)
                    scoped = RateLimiter.scoped_key(client_key, self.capability)
                    raise RateLimited(
                        client_key, self.rate_limiter.retry_after(scoped, rule.window_seconds)
                    )

                self._logger.warning("rate_limited_no_cache", key=key, client_key=client_key)

        result = await self.inflight.run(key, lambda: self._resolve_upstream(key, fetch))
        if over_quota:
            result = result.model_copy(update={"rate_limited": True})
        return result

    def _from_cache(self, lookup: CacheLookup, **flags: Any) -> ResolvedValue:
        cached: ResolvedValue = lookup.value
        return cached.model_copy(update={"cached": True, "stale": not lookup.fresh, **flags})

    async def _attempt(self, strategy: SourceStrategy, fetch: Fetcher) -> Any:
        """Run one time-boxed fetch and validate the payload.

        Raises:
            UpstreamError: On any failure, normalized to the taxonomy.
        """
        timeout = strategy.timeout_for(self.capability)
        try:
            value = await asyncio.wait_for(fetch(strategy), timeout)
        except TimeoutError as e:
            raise UpstreamTimeout(strategy.name, timeout) from e
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(f"{strategy.name} failed: {e}", source=strategy.name) from e

        validate_payload(value, strategy.name)
        return value

    async def _resolve_upstream(self, key: str, fetch: Fetcher) -> ResolvedValue:
        errors: list[str] = []

        for strategy in self.strategies:
            if not strategy.supports(self.capability):
                continue

            try:
                value = await self._attempt(strategy, fetch)
            except UpstreamError as e:
                errors.append(e.message)
                self._stats["strategy_failures"] += 1
                self._logger.warning(
                    "strategy_failed",
                    key=key,
                    source=strategy.name,
                    error_type=e.__class__.__name__,
                    error=e.message,
                )
                continue

            resolved = ResolvedValue(value=value, source=strategy.name, errors=errors)
            self.cache.set(key, resolved, ttl=self.ttl)
            self._stats["upstream_success"] += 1
            self._logger.info("value_resolved", key=key, source=strategy.name, attempts=len(errors) + 1)
            return resolved

        reason = errors[-1] if errors else "no strategy supports this capability"

        stale = self.cache.get(key)
        if stale.found:
            self._stats["stale_fallback"] += 1
            self._logger.warning("fallback_used", key=key, fallback="stale_cache", reason=reason)
            return self._from_cache(stale, fallback=True, reason=reason, errors=errors)

        if self.static is not None and self.static.supports(self.capability):
            try:
                value = await self._attempt(self.static, fetch)
            except UpstreamError as e:
                errors.append(e.message)
                self._logger.error("static_fallback_failed", key=key, error=e.message)
            else:
                self._stats["static_fallback"] += 1
                self._logger.warning("fallback_used", key=key, fallback=self.static.name, reason=reason)
                return ResolvedValue(
                    value=value,
                    source=self.static.name,
                    fallback=True,
                    reason=reason,
                    errors=errors,
                )

        self._stats["exhausted"] += 1
        self._logger.error("all_sources_exhausted", key=key, errors=errors)
        raise AllSourcesExhausted(self.capability.value, errors)
