"""Service facade exposing the two logical operations.

``resolve_quote`` serves live quotes and candle series; ``resolve_sentiment``
serves fused price/news/social sentiment. Both share one cache, one rate
limiter and one in-flight registry for the lifetime of the process.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from stockpulse.cache.store import CacheKeyBuilder, CacheStore, normalize_symbol
from stockpulse.config import Settings
from stockpulse.data.models import Capability, FusedSentiment, ResolvedValue, SignalSource
from stockpulse.data.strategies import (
    PrimaryExchangeStrategy,
    SecondaryVendorStrategy,
    SourceStrategy,
    StaticFallbackStrategy,
    TertiaryVendorStrategy,
)
from stockpulse.errors import RateLimited, SignalUnavailable, StockPulseError
from stockpulse.resilience.rate_limiter import RateLimiter
from stockpulse.resolution.inflight import InFlightRegistry
from stockpulse.resolution.resolver import FallbackResolver
from stockpulse.sentiment.fusion import SentimentFusionEngine
from stockpulse.sentiment.signals import (
    NewsHeadlineStrategy,
    PriceActionSignalStrategy,
    SocialBuzzStrategy,
)

logger = structlog.get_logger(__name__)

DEFAULT_CLIENT_KEY = "anonymous"


class StockPulse:
    """Resilient quote, candle and sentiment resolution.

    Example:
        async with StockPulse.build_default() as pulse:
            quote = await pulse.resolve_quote("reliance.ns", client_key="203.0.113.7")
            print(quote.value.price, quote.source, quote.fallback)

            sentiment = await pulse.resolve_sentiment("INFY")
            print(sentiment.composite_score, sentiment.label, sentiment.confidence)
    """

    def __init__(
        self,
        *,
        quote_strategies: Sequence[SourceStrategy],
        historical_strategies: Sequence[SourceStrategy],
        signal_strategies: dict[SignalSource, Sequence[SourceStrategy]],
        static: SourceStrategy | None = None,
        cache: CacheStore | None = None,
        rate_limiter: RateLimiter | None = None,
        fusion: SentimentFusionEngine | None = None,
        strict_rate_limit: bool = False,
        http_client: httpx.AsyncClient | None = None,
        reaper_interval: float = 300.0,
        staleness_factor: float = 12.0,
    ) -> None:
        """Initialize the service.

        Args:
            quote_strategies: Quote strategies in priority order.
            historical_strategies: Candle strategies in priority order.
            signal_strategies: Strategies per sentiment signal, in priority
                order. Signals have no static fallback.
            static: Last-resort strategy for quotes and candles.
            cache: Shared cache store.
            rate_limiter: Shared per-client rate limiter.
            fusion: Sentiment fusion engine.
            strict_rate_limit: Reject over-quota callers with nothing cached.
            http_client: Client shared by HTTP strategies; closed by ``close``.
            reaper_interval: Seconds between cache sweeps.
            staleness_factor: Entries older than ttl * factor are swept.
        """
        self.cache = cache if cache is not None else CacheStore()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self.fusion = fusion if fusion is not None else SentimentFusionEngine()
        self.strict_rate_limit = strict_rate_limit
        self.inflight = InFlightRegistry()
        self._http_client = http_client
        self._reaper_interval = reaper_interval
        self._staleness_factor = staleness_factor
        self._logger = logger.bind(component="stockpulse")

        self.quotes = FallbackResolver(
            Capability.QUOTE,
            quote_strategies,
            self.cache,
            self.rate_limiter,
            static=static,
            strict_rate_limit=strict_rate_limit,
            inflight=self.inflight,
        )
        self.historical = FallbackResolver(
            Capability.HISTORICAL,
            historical_strategies,
            self.cache,
            self.rate_limiter,
            static=static,
            strict_rate_limit=strict_rate_limit,
            inflight=self.inflight,
        )
        # The sentiment quota is charged once per fused request, not per signal
        self.signals = {
            source: FallbackResolver(
                Capability.SENTIMENT,
                signal_strategies.get(source, []),
                self.cache,
                ttl=self.cache.config.get_signal_ttl(source.value),
                inflight=self.inflight,
                name=f"signal:{source.value}",
            )
            for source in SignalSource
        }

        self._strategies: list[SourceStrategy] = [
            *quote_strategies,
            *historical_strategies,
            *(s for strategies in signal_strategies.values() for s in strategies),
        ]
        if static is not None:
            self._strategies.append(static)

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "StockPulse":
        """Build the default provider chains from settings.

        Quote chain: exchange, Yahoo Finance, keyed vendor, static closes.
        Candle chain: Yahoo Finance, keyed vendor, synthetic series.
        Price signal scores the candle chain's live providers; news and
        social each have one provider.

        Args:
            settings: Application settings.
            **kwargs: Overrides passed to the constructor.

        Returns:
            Configured StockPulse instance.
        """
        http_client = kwargs.pop("http_client", None) or httpx.AsyncClient(
            timeout=30.0, follow_redirects=True
        )

        primary = PrimaryExchangeStrategy(settings.EXCHANGE_BASE_URL, http_client=http_client)
        secondary = SecondaryVendorStrategy(market_suffix=settings.MARKET_SUFFIX)
        tertiary = TertiaryVendorStrategy(
            api_key=settings.ALPHA_VANTAGE_API_KEY,
            base_url=settings.ALPHA_VANTAGE_BASE_URL,
            http_client=http_client,
        )

        signal_strategies: dict[SignalSource, Sequence[SourceStrategy]] = {
            SignalSource.PRICE: [
                PriceActionSignalStrategy(secondary),
                PriceActionSignalStrategy(tertiary),
            ],
            SignalSource.NEWS: [
                NewsHeadlineStrategy(settings.NEWS_FEED_URL, http_client=http_client),
            ],
            SignalSource.SOCIAL: [
                SocialBuzzStrategy(
                    settings.SOCIAL_SEARCH_URL,
                    communities=settings.social_communities,
                    http_client=http_client,
                ),
            ],
        }

        kwargs.setdefault("strict_rate_limit", settings.STRICT_RATE_LIMIT)
        kwargs.setdefault("reaper_interval", settings.CACHE_REAPER_INTERVAL)
        kwargs.setdefault("staleness_factor", settings.CACHE_STALENESS_FACTOR)

        return cls(
            quote_strategies=[primary, secondary, tertiary],
            historical_strategies=[secondary, tertiary],
            signal_strategies=signal_strategies,
            static=StaticFallbackStrategy(),
            http_client=http_client,
            **kwargs,
        )

    @classmethod
    def build_default(cls, **kwargs: Any) -> "StockPulse":
        """Build from environment settings."""
        return cls.from_settings(Settings.from_env(), **kwargs)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the cache reaper on the running loop."""
        self.cache.start_reaper(self._reaper_interval, self._staleness_factor)

    async def close(self) -> None:
        """Stop the reaper and release HTTP resources."""
        await self.cache.stop_reaper()

        seen: set[int] = set()
        for strategy in self._strategies:
            if id(strategy) in seen:
                continue
            seen.add(id(strategy))
            await strategy.close()

        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        self._logger.info("stockpulse_closed")

    async def __aenter__(self) -> "StockPulse":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # =========================================================================
    # Operations
    # =========================================================================

    async def resolve_quote(
        self,
        symbol: str,
        capability: Capability | str = Capability.QUOTE,
        client_key: str = DEFAULT_CLIENT_KEY,
        interval: str = "1d",
        range_: str = "1mo",
    ) -> ResolvedValue:
        """Resolve a live quote or a candle series.

        Args:
            symbol: Raw symbol; ".NS"/".BO" suffixes and case are ignored.
            capability: "quote" or "historical".
            client_key: Caller identity for rate limiting.
            interval: Candle interval (historical only).
            range_: Lookback range (historical only).

        Returns:
            ResolvedValue holding a Quote or a HistoricalSeries.

        Raises:
            InvalidSymbolError: If the symbol is empty or malformed.
            RateLimited: Strict mode only, when over quota with no cache.
            ValueError: If ``capability`` is not quote or historical.
        """
        capability = Capability(capability)
        normalized = normalize_symbol(symbol)

        if capability == Capability.QUOTE:
            return await self.quotes.resolve(
                CacheKeyBuilder.quote(normalized),
                lambda strategy: strategy.fetch_quote(normalized),
                client_key=client_key,
            )
        if capability == Capability.HISTORICAL:
            return await self.historical.resolve(
                CacheKeyBuilder.historical(normalized, interval, range_),
                lambda strategy: strategy.fetch_historical(normalized, interval, range_),
                client_key=client_key,
            )
        raise ValueError(f"resolve_quote does not serve {capability.value}; use resolve_sentiment")

    async def resolve_sentiment(
        self,
        symbol: str,
        client_key: str = DEFAULT_CLIENT_KEY,
    ) -> FusedSentiment:
        """Resolve fused sentiment for a symbol.

        The three signals resolve concurrently. A signal that cannot be
        resolved at all is replaced by the neutral score, lowering
        confidence instead of failing the request.

        Args:
            symbol: Raw symbol.
            client_key: Caller identity for rate limiting.

        Returns:
            FusedSentiment, possibly served from cache.

        Raises:
            InvalidSymbolError: If the symbol is empty or malformed.
            RateLimited: Strict mode only, when over quota with no cache.
        """
        normalized = normalize_symbol(symbol)
        key = CacheKeyBuilder.sentiment(normalized)

        lookup = self.cache.get(key)
        if lookup.fresh:
            return lookup.value

        if not self.rate_limiter.allow_capability(client_key, Capability.SENTIMENT):
            if lookup.found:
                self._logger.info("rate_limited_cache_served", key=key, client_key=client_key)
                return lookup.value
            if self.strict_rate_limit:
                rule = self.rate_limiter.config.get_rule(Capability.SENTIMENT)
                scoped = RateLimiter.scoped_key(client_key, Capability.SENTIMENT)
                raise RateLimited(
                    client_key, self.rate_limiter.retry_after(scoped, rule.window_seconds)
                )
            self._logger.warning("rate_limited_no_cache", key=key, client_key=client_key)

        return await self.inflight.run(key, lambda: self._fuse(normalized))

    async def _fuse(self, symbol: str) -> FusedSentiment:
        sources = list(SignalSource)
        results = await asyncio.gather(
            *(
                self.signals[source].resolve(
                    CacheKeyBuilder.signal(symbol, source.value),
                    lambda strategy, source=source: strategy.fetch_sentiment_signal(symbol, source),
                )
                for source in sources
            ),
            return_exceptions=True,
        )

        scores: dict[SignalSource, float | None] = {}
        origins: dict[SignalSource, str] = {}
        for source, result in zip(sources, results, strict=True):
            if isinstance(result, ResolvedValue):
                scores[source] = result.value.score
                origins[source] = result.source
                continue

            if isinstance(result, StockPulseError):
                reason = result.message
            else:
                reason = f"{result.__class__.__name__}: {result}"
            unavailable = SignalUnavailable(source.value, reason)
            self._logger.warning("signal_unavailable", symbol=symbol, **unavailable.to_dict())
            scores[source] = None

        fused = self.fusion.fuse(symbol, scores, origins)
        self.cache.set(CacheKeyBuilder.sentiment(symbol), fused, capability=Capability.SENTIMENT)
        return fused

    # =========================================================================
    # Maintenance
    # =========================================================================

    def invalidate(self, symbol: str) -> int:
        """Drop every cached value for a symbol."""
        return self.cache.invalidate_symbol(symbol)

    def get_metrics(self) -> dict[str, Any]:
        """Cache metrics and per-resolver statistics."""
        return {
            "cache": self.cache.get_metrics(),
            "resolvers": {
                "quote": self.quotes.stats,
                "historical": self.historical.stats,
                **{f"signal:{s.value}": r.stats for s, r in self.signals.items()},
            },
            "coalesced": self.inflight.coalesced,
        }
