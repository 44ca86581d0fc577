"""Market data models and source strategies.

This module contains:
- Pydantic models for quotes, candles and sentiment
- SourceStrategy adapters for each upstream provider
"""

from stockpulse.data.models import (
    Candle,
    Capability,
    FusedSentiment,
    HistoricalSeries,
    Quote,
    ResolvedValue,
    SentimentLabel,
    SentimentSignal,
    SignalSource,
)
from stockpulse.data.strategies import (
    LAST_KNOWN_CLOSES,
    HttpSourceStrategy,
    PrimaryExchangeStrategy,
    SecondaryVendorStrategy,
    SourceStrategy,
    StaticFallbackStrategy,
    TertiaryVendorStrategy,
    range_to_bars,
)

__all__ = [
    # Models
    "Candle",
    "Capability",
    "FusedSentiment",
    "HistoricalSeries",
    "Quote",
    "ResolvedValue",
    "SentimentLabel",
    "SentimentSignal",
    "SignalSource",
    # Strategies
    "HttpSourceStrategy",
    "PrimaryExchangeStrategy",
    "SecondaryVendorStrategy",
    "SourceStrategy",
    "StaticFallbackStrategy",
    "TertiaryVendorStrategy",
    # Static data
    "LAST_KNOWN_CLOSES",
    "range_to_bars",
]
