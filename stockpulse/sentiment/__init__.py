"""Sentiment scoring and fusion.

This module contains:
- KeywordSentimentScorer with news and social lexicons
- Price-action scoring from recent candles
- SentimentFusionEngine combining price, news and social signals
- Signal strategies that fetch each input
"""

from stockpulse.sentiment.fusion import (
    BEARISH_THRESHOLD,
    BULLISH_THRESHOLD,
    NEWS_WEIGHT,
    PRICE_WEIGHT,
    SIGNAL_WEIGHTS,
    SOCIAL_WEIGHT,
    SentimentFusionEngine,
    label_for,
    summarize,
)
from stockpulse.sentiment.keywords import (
    NEWS_LEXICON,
    SOCIAL_LEXICON,
    AggregateScore,
    KeywordLexicon,
    KeywordScore,
    KeywordSentimentScorer,
    Post,
    to_percent,
)
from stockpulse.sentiment.price_action import score_price_action
from stockpulse.sentiment.signals import (
    Headline,
    NewsHeadlineStrategy,
    PriceActionSignalStrategy,
    SocialBuzzStrategy,
    parse_headline_feed,
)

__all__ = [
    # Fusion
    "SentimentFusionEngine",
    "label_for",
    "summarize",
    "PRICE_WEIGHT",
    "NEWS_WEIGHT",
    "SOCIAL_WEIGHT",
    "SIGNAL_WEIGHTS",
    "BULLISH_THRESHOLD",
    "BEARISH_THRESHOLD",
    # Keyword scoring
    "AggregateScore",
    "KeywordLexicon",
    "KeywordScore",
    "KeywordSentimentScorer",
    "Post",
    "NEWS_LEXICON",
    "SOCIAL_LEXICON",
    "to_percent",
    # Price action
    "score_price_action",
    # Signal strategies
    "Headline",
    "NewsHeadlineStrategy",
    "PriceActionSignalStrategy",
    "SocialBuzzStrategy",
    "parse_headline_feed",
]
