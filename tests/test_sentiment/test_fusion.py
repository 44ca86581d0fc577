"""Tests for sentiment fusion."""

import itertools
from decimal import ROUND_HALF_UP, Decimal

import pytest

from stockpulse.data.models import SentimentLabel, SignalSource
from stockpulse.sentiment.fusion import (
    NEWS_WEIGHT,
    PRICE_WEIGHT,
    SOCIAL_WEIGHT,
    SentimentFusionEngine,
    label_for,
    summarize,
)

PRICE, NEWS, SOCIAL = SignalSource.PRICE, SignalSource.NEWS, SignalSource.SOCIAL


def _expected_composite(price: int, news: int, social: int) -> int:
    total = (
        Decimal("0.65") * price + Decimal("0.25") * news + Decimal("0.10") * social
    )
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class TestWeights:
    """Tests for the fixed weights."""

    def test_weights(self) -> None:
        """Test weights are price 0.65, news 0.25, social 0.10."""
        assert (PRICE_WEIGHT, NEWS_WEIGHT, SOCIAL_WEIGHT) == (0.65, 0.25, 0.10)

    def test_weights_sum_to_one(self) -> None:
        """Test the fixed weights sum to 1."""
        assert sum(SentimentFusionEngine.weights.values()) == pytest.approx(1.0)

    def test_weights_not_configurable(self) -> None:
        """Test the engine accepts no caller-supplied weights."""
        with pytest.raises(TypeError):
            SentimentFusionEngine({PRICE: 0.5, NEWS: 0.5, SOCIAL: 0.0})


class TestLabel:
    """Tests for label_for."""

    def test_thresholds(self) -> None:
        """Test bullish at 65 and above, bearish at 35 and below."""
        assert label_for(65) == SentimentLabel.BULLISH
        assert label_for(64) == SentimentLabel.NEUTRAL
        assert label_for(36) == SentimentLabel.NEUTRAL
        assert label_for(35) == SentimentLabel.BEARISH


class TestSentimentFusionEngine:
    """Tests for SentimentFusionEngine.fuse."""

    def test_bullish_scenario(self) -> None:
        """Test price 80, news 70, social 60 fuses to a bullish 76."""
        fused = SentimentFusionEngine().fuse("INFY", {PRICE: 80, NEWS: 70, SOCIAL: 60})

        assert fused.composite_score == 76
        assert fused.label == SentimentLabel.BULLISH
        assert fused.confidence == 90
        assert fused.symbol == "INFY"

    def test_bearish_scenario(self) -> None:
        """Test price 20, news 30, social 50 fuses to a bearish 26."""
        fused = SentimentFusionEngine().fuse("INFY", {PRICE: 20, NEWS: 30, SOCIAL: 50})

        assert fused.composite_score == 26
        assert fused.label == SentimentLabel.BEARISH
        assert fused.confidence == 86

    def test_composite_bounds_and_rounding(self) -> None:
        """Test the composite equals the rounded weighted sum over a grid of inputs."""
        engine = SentimentFusionEngine()
        for price, news, social in itertools.product(range(0, 101, 10), repeat=3):
            fused = engine.fuse("X", {PRICE: price, NEWS: news, SOCIAL: social})
            assert 0 <= fused.composite_score <= 100
            assert fused.composite_score == _expected_composite(price, news, social)
            assert 0 <= fused.confidence <= 100

    def test_agreement_gives_full_confidence(self) -> None:
        """Test identical scores give confidence 100."""
        fused = SentimentFusionEngine().fuse("X", {PRICE: 60, NEWS: 60, SOCIAL: 60})
        assert fused.confidence == 100

    def test_confidence_monotonic_in_spread(self) -> None:
        """Test wider spread around the same composite never raises confidence."""
        engine = SentimentFusionEngine()
        triples = [(60, 60, 60), (60, 70, 35), (60, 80, 10)]

        results = [engine.fuse("X", {PRICE: p, NEWS: n, SOCIAL: s}) for p, n, s in triples]

        assert {r.composite_score for r in results} == {60}
        confidences = [r.confidence for r in results]
        assert confidences == sorted(confidences, reverse=True)
        assert confidences[0] > confidences[-1]

    def test_signal_order_and_weights(self) -> None:
        """Test contributing signals are reported in price, news, social order."""
        fused = SentimentFusionEngine().fuse(
            "X",
            {SOCIAL: 40, PRICE: 70, NEWS: 55},
            origins={PRICE: "price_action:secondary_vendor"},
        )

        assert [s.source for s in fused.contributing_signals] == [PRICE, NEWS, SOCIAL]
        assert [s.weight for s in fused.contributing_signals] == [0.65, 0.25, 0.10]
        assert fused.signal(PRICE).origin == "price_action:secondary_vendor"
        assert fused.signal(NEWS).origin is None

    def test_scores_clamped(self) -> None:
        """Test out-of-range inputs are clamped before fusion."""
        fused = SentimentFusionEngine().fuse("X", {PRICE: 140, NEWS: -20, SOCIAL: 100})
        assert fused.signal(PRICE).score == 100
        assert fused.signal(NEWS).score == 0
        assert 0 <= fused.composite_score <= 100


class TestMissingSignals:
    """Tests for fusion with unavailable signals."""

    def test_missing_signal_defaults_to_neutral(self) -> None:
        """Test an absent signal is replaced with 50 and flagged."""
        fused = SentimentFusionEngine().fuse("X", {PRICE: 80, NEWS: 70, SOCIAL: None})

        social = fused.signal(SOCIAL)
        assert social.score == 50
        assert social.available is False
        assert fused.signal(PRICE).available is True

    def test_missing_signal_lowers_confidence(self) -> None:
        """Test a missing signal reports less confidence than the same values present."""
        engine = SentimentFusionEngine()
        for price, news in itertools.product(range(0, 101, 20), repeat=2):
            present = engine.fuse("X", {PRICE: price, NEWS: news, SOCIAL: 50})
            missing = engine.fuse("X", {PRICE: price, NEWS: news})

            assert missing.composite_score == present.composite_score
            assert missing.confidence <= present.confidence
            if present.confidence > 0:
                assert missing.confidence < present.confidence

    def test_all_missing(self) -> None:
        """Test no signals at all gives a neutral 50 with reduced confidence."""
        fused = SentimentFusionEngine().fuse("X", {})

        assert fused.composite_score == 50
        assert fused.label == SentimentLabel.NEUTRAL
        assert fused.confidence == 50
        assert all(not s.available for s in fused.contributing_signals)

    def test_non_finite_treated_as_missing(self) -> None:
        """Test NaN scores count as unavailable."""
        fused = SentimentFusionEngine().fuse("X", {PRICE: float("nan"), NEWS: 50, SOCIAL: 50})
        assert fused.signal(PRICE).available is False


class TestSummarize:
    """Tests for summarize."""

    def test_bullish_summary(self) -> None:
        """Test the bullish summary names its drivers."""
        text = summarize(SentimentLabel.BULLISH, 76, news_score=70, social_score=60)
        assert text == (
            "Strong bullish sentiment driven by positive news coverage and "
            "moderate social activity. Community showing interest."
        )

    def test_bearish_summary(self) -> None:
        """Test the bearish summary names its drivers."""
        text = summarize(SentimentLabel.BEARISH, 26, news_score=30, social_score=30)
        assert text == (
            "Weak bearish sentiment with negative news coverage and "
            "bearish social sentiment. Market showing caution."
        )

    def test_neutral_summary(self) -> None:
        """Test the neutral summary mentions news only."""
        text = summarize(SentimentLabel.NEUTRAL, 50, news_score=50, social_score=90)
        assert text == "Neutral market sentiment with neutral news. Mixed signals from social channels."

    def test_fused_summary_attached(self) -> None:
        """Test fusion fills in the summary."""
        fused = SentimentFusionEngine().fuse("X", {PRICE: 80, NEWS: 70, SOCIAL: 60})
        assert fused.summary.startswith("Strong bullish")
