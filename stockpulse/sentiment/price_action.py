"""Price-action sentiment from recent candles.

The score starts neutral at 50 and moves with short-term momentum and
relative volume:

- Momentum: percent change between the first and last close of the
  lookback window, times 5, clamped to +/-40
- Volume: last volume against the window mean; above 1.5x adds 15,
  above 1.2x adds 10, below 0.7x subtracts 15
"""

from collections.abc import Sequence

from stockpulse.data.models import Candle
from stockpulse.errors import UpstreamInvalidPayload

LOOKBACK = 5
MOMENTUM_MULTIPLIER = 5.0
MOMENTUM_CAP = 40.0


def momentum_percent(candles: Sequence[Candle]) -> float:
    """Percent change from the first to the last close."""
    first, last = candles[0].close, candles[-1].close
    if first <= 0:
        return 0.0
    return (last - first) / first * 100


def volume_ratio(candles: Sequence[Candle]) -> float:
    """Last candle's volume relative to the mean volume."""
    mean = sum(c.volume for c in candles) / len(candles)
    if mean <= 0:
        return 1.0
    return candles[-1].volume / mean


def score_price_action(candles: Sequence[Candle], source: str = "price_action") -> int:
    """Score the most recent candles on a 0-100 scale.

    Args:
        candles: Series oldest first; only the last five are used.
        source: Name reported if the series is too short.

    Returns:
        Integer score, 50 meaning flat price on average volume.

    Raises:
        UpstreamInvalidPayload: If fewer than five candles are given.
    """
    if len(candles) < LOOKBACK:
        raise UpstreamInvalidPayload(source, f"need {LOOKBACK} candles, got {len(candles)}")

    window = candles[-LOOKBACK:]
    score = 50.0

    momentum = momentum_percent(window) * MOMENTUM_MULTIPLIER
    score += max(-MOMENTUM_CAP, min(MOMENTUM_CAP, momentum))

    ratio = volume_ratio(window)
    if ratio > 1.5:
        score += 15
    elif ratio > 1.2:
        score += 10
    elif ratio < 0.7:
        score -= 15

    return int(max(0, min(100, round(score))))
