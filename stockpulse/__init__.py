"""Resilient multi-source market data and sentiment resolution."""

from stockpulse.cache.store import normalize_symbol
from stockpulse.data.models import (
    Capability,
    FusedSentiment,
    HistoricalSeries,
    Quote,
    ResolvedValue,
    SentimentLabel,
    SignalSource,
)
from stockpulse.service import StockPulse

__version__ = "0.1.0"

__all__ = [
    "StockPulse",
    "normalize_symbol",
    # Models
    "Capability",
    "FusedSentiment",
    "HistoricalSeries",
    "Quote",
    "ResolvedValue",
    "SentimentLabel",
    "SignalSource",
]
