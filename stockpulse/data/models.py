"""Data models for the resolution layer.

This module defines the Pydantic models shared by source strategies,
the cache, the resolver and the sentiment fusion engine.
"""

from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class Capability(str, Enum):
    """Kinds of value a source strategy can resolve."""

    QUOTE = "quote"
    HISTORICAL = "historical"
    SENTIMENT = "sentiment"


class SignalSource(str, Enum):
    """Independent inputs to sentiment fusion."""

    PRICE = "price"
    NEWS = "news"
    SOCIAL = "social"


class SentimentLabel(str, Enum):
    """Direction of a fused sentiment score."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Quote(BaseModel):
    """Latest quote for a symbol.

    Replaced, never mutated, on each successful resolution.

    Attributes:
        symbol: Normalized ticker symbol (no exchange suffix).
        price: Last traded price.
        change: Absolute change from previous close.
        change_percent: Percentage change from previous close.
        open: Opening price.
        high: Day high.
        low: Day low.
        volume: Traded volume.
        previous_close: Previous session close.
        company_name: Display name, when the source provides one.
        source_name: Strategy that produced the quote.
        resolved_at: When the quote was fetched.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    open: float | None = None
    high: float | None = None
    low: float | None = None
    volume: int = 0
    previous_close: float | None = None
    company_name: str | None = None
    source_name: str
    resolved_at: datetime = Field(default_factory=datetime.now)


class Candle(BaseModel):
    """OHLCV candle for one interval."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


class HistoricalSeries(BaseModel):
    """Ordered candles for a symbol, oldest first.

    Attributes:
        symbol: Normalized ticker symbol.
        interval: Candle interval (e.g., "1d").
        range: Lookback range (e.g., "1mo").
        candles: Candles in chronological order.
        source_name: Strategy that produced the series.
        resolved_at: When the series was fetched.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    interval: str = "1d"
    range: str = "1mo"
    candles: list[Candle] = Field(default_factory=list)
    source_name: str
    resolved_at: datetime = Field(default_factory=datetime.now)


class SentimentSignal(BaseModel):
    """One weighted input to sentiment fusion.

    Attributes:
        source: Which independent signal this is.
        score: Sentiment score on a 0-100 scale.
        weight: Fixed fusion weight for this source.
        available: False when the neutral default was substituted.
        origin: Strategy that produced the score, if any.
    """

    model_config = ConfigDict(frozen=True)

    source: SignalSource
    score: float = Field(ge=0.0, le=100.0)
    weight: float = Field(ge=0.0, le=1.0)
    available: bool = True
    origin: str | None = None


class FusedSentiment(BaseModel):
    """Composite sentiment for a symbol.

    Attributes:
        symbol: Normalized ticker symbol.
        composite_score: Weighted sum of signal scores, 0-100.
        label: bullish / bearish / neutral.
        confidence: Agreement among the signals, 0-100.
        contributing_signals: Signals in price, news, social order.
        summary: Short human-readable explanation.
        computed_at: When fusion ran.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    composite_score: int = Field(ge=0, le=100)
    label: SentimentLabel
    confidence: int = Field(ge=0, le=100)
    contributing_signals: list[SentimentSignal] = Field(default_factory=list)
    summary: str = ""
    computed_at: datetime = Field(default_factory=datetime.now)

    def signal(self, source: SignalSource) -> SentimentSignal | None:
        """Look up the contributing signal for a source."""
        for signal in self.contributing_signals:
            if signal.source == source:
                return signal
        return None


class ResolvedValue(BaseModel, Generic[T]):
    """A resolved value tagged with its provenance.

    Attributes:
        value: The resolved payload.
        source: Name of the strategy that produced it.
        cached: Served from the cache rather than a live call.
        fallback: A degraded path (stale cache or static data) was used.
        stale: The cached entry was past its TTL.
        rate_limited: The caller was over quota when this was served.
        reason: Last upstream failure when ``fallback`` is set.
        errors: Failure message per strategy tried, in priority order.
        resolved_at: When resolution finished.
    """

    value: T
    source: str
    cached: bool = False
    fallback: bool = False
    stale: bool = False
    rate_limited: bool = False
    reason: str | None = None
    errors: list[str] = Field(default_factory=list)
    resolved_at: datetime = Field(default_factory=datetime.now)

    @property
    def degraded(self) -> bool:
        """Whether consumers should treat this answer as degraded."""
        return self.fallback or self.stale or self.rate_limited
