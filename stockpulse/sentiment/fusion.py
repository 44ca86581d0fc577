"""Fusion of price, news and social signals into one sentiment.

Composite score is the fixed-weight sum of the three signal scores,
rounded half up and clamped to 0-100. Confidence measures agreement:
100 minus the root-mean-square deviation of the individual scores from
the composite.

A missing signal never fails fusion. The neutral score 50 is substituted
and the signal is marked unavailable; confidence is then scaled by
``0.5 + 0.5 * available_weight`` so a degraded answer always reports less
confidence than the same answer with every signal present.
"""

import math
from collections.abc import Mapping

import structlog

from stockpulse.data.models import FusedSentiment, SentimentLabel, SentimentSignal, SignalSource

logger = structlog.get_logger(__name__)

PRICE_WEIGHT = 0.65
NEWS_WEIGHT = 0.25
SOCIAL_WEIGHT = 0.10

SIGNAL_WEIGHTS: dict[SignalSource, float] = {
    SignalSource.PRICE: PRICE_WEIGHT,
    SignalSource.NEWS: NEWS_WEIGHT,
    SignalSource.SOCIAL: SOCIAL_WEIGHT,
}

BULLISH_THRESHOLD = 65
BEARISH_THRESHOLD = 35
NEUTRAL_SCORE = 50.0


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5 + 1e-9))


def label_for(score: float) -> SentimentLabel:
    """Map a composite score to its label."""
    if score >= BULLISH_THRESHOLD:
        return SentimentLabel.BULLISH
    if score <= BEARISH_THRESHOLD:
        return SentimentLabel.BEARISH
    return SentimentLabel.NEUTRAL


def summarize(label: SentimentLabel, score: int, news_score: float, social_score: float) -> str:
    """One-sentence explanation of a fused sentiment.

    Args:
        label: Fused label.
        score: Composite score.
        news_score: News signal score.
        social_score: Social signal score.

    Returns:
        Human-readable summary.
    """
    if score >= 75:
        strength = "Strong"
    elif score >= 60:
        strength = "Moderate"
    elif score >= 40:
        strength = "Mixed"
    elif score >= 25:
        strength = "Weak"
    else:
        strength = "Very weak"

    if news_score > 60:
        news_driver = "positive news coverage"
    elif news_score < 40:
        news_driver = "negative news coverage"
    else:
        news_driver = "neutral news"

    if social_score > 60:
        social_driver = "high social engagement"
    elif social_score < 40:
        social_driver = "bearish social sentiment"
    else:
        social_driver = "moderate social activity"

    if label == SentimentLabel.BULLISH:
        return (
            f"{strength} bullish sentiment driven by {news_driver} and {social_driver}. "
            "Community showing interest."
        )
    if label == SentimentLabel.BEARISH:
        return (
            f"{strength} bearish sentiment with {news_driver} and {social_driver}. "
            "Market showing caution."
        )
    return f"Neutral market sentiment with {news_driver}. Mixed signals from social channels."


class SentimentFusionEngine:
    """Combines independently resolved signal scores.

    Example:
        engine = SentimentFusionEngine()
        fused = engine.fuse(
            "INFY",
            {SignalSource.PRICE: 80, SignalSource.NEWS: 70, SignalSource.SOCIAL: 60},
        )
        # fused.composite_score == 76, fused.label == SentimentLabel.BULLISH
    """

    #: Fixed weight per signal
    weights = SIGNAL_WEIGHTS

    def __init__(self) -> None:
        self._logger = logger.bind(component="sentiment_fusion")

    def fuse(
        self,
        symbol: str,
        scores: Mapping[SignalSource, float | None],
        origins: Mapping[SignalSource, str] | None = None,
    ) -> FusedSentiment:
        """Fuse up to three signal scores.

        Args:
            symbol: Normalized symbol.
            scores: Score 0-100 per signal; absent or None means unavailable.
            origins: Strategy that produced each available score.

        Returns:
            FusedSentiment with signals in price, news, social order.
        """
        origins = origins or {}
        signals: list[SentimentSignal] = []

        for source in (SignalSource.PRICE, SignalSource.NEWS, SignalSource.SOCIAL):
            raw = scores.get(source)
            available = raw is not None and math.isfinite(raw)
            signals.append(
                SentimentSignal(
                    source=source,
                    score=_clamp(float(raw)) if available else NEUTRAL_SCORE,
                    weight=self.weights[source],
                    available=available,
                    origin=origins.get(source) if available else None,
                )
            )

        composite = _round_half_up(_clamp(sum(s.score * s.weight for s in signals)))

        rms = math.sqrt(sum((s.score - composite) ** 2 for s in signals) / len(signals))
        confidence = _clamp(100 - rms)

        available_weight = sum(s.weight for s in signals if s.available)
        if available_weight < 1.0 - 1e-9:
            confidence *= 0.5 + 0.5 * available_weight

        label = label_for(composite)
        by_source = {s.source: s.score for s in signals}

        fused = FusedSentiment(
            symbol=symbol,
            composite_score=composite,
            label=label,
            confidence=_round_half_up(confidence),
            contributing_signals=signals,
            summary=summarize(
                label, composite, by_source[SignalSource.NEWS], by_source[SignalSource.SOCIAL]
            ),
        )

        self._logger.info(
            "sentiment_fused",
            symbol=symbol,
            score=fused.composite_score,
            label=fused.label.value,
            confidence=fused.confidence,
            missing=[s.source.value for s in signals if not s.available],
        )
        return fused
