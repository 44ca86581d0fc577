"""Keyword-based sentiment scoring for headlines and posts.

Scoring is pure and deterministic: text is lower-cased and each lexicon
term counts once if it appears anywhere in the text. Matching is plain
substring containment with no word boundaries, so "low" also matches
inside "below".

Scales:
- ``score`` and ``aggregate`` produce a 1-10 score
- ``score_posts`` produces a 0-100 score
- ``to_percent`` rescales 1-10 to 0-100
"""

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

Polarity = Literal["positive", "negative", "neutral"]
ImpactLevel = Literal["high", "medium", "low"]


# ============================================================================
# Lexicons
# ============================================================================


@dataclass(frozen=True)
class KeywordLexicon:
    """Positive, negative and high-impact term lists.

    Attributes:
        positive: Terms that push sentiment up.
        negative: Terms that push sentiment down.
        impact: Terms marking price-moving events.
    """

    positive: tuple[str, ...]
    negative: tuple[str, ...]
    impact: tuple[str, ...] = ()


NEWS_LEXICON = KeywordLexicon(
    positive=(
        "profit", "growth", "surge", "jump", "gain", "rally", "high", "record",
        "strong", "beat", "exceed", "boost", "rise", "up", "positive", "good",
        "bullish", "upgrade", "buy", "outperform", "expansion", "innovation",
        "partnership", "acquisition", "revenue", "earnings beat", "dividend",
    ),
    negative=(
        "loss", "fall", "drop", "decline", "crash", "down", "weak", "miss",
        "disappoint", "concern", "risk", "warning", "cut", "reduce", "negative",
        "bearish", "downgrade", "sell", "underperform", "debt", "lawsuit",
        "investigation", "scandal", "layoff", "closure", "bankruptcy",
    ),
    impact=(
        "earnings", "results", "profit", "revenue", "guidance", "forecast",
        "merger", "acquisition", "ceo", "regulation", "ban", "approval",
        "launch", "record", "breakthrough", "crisis", "scandal",
    ),
)

SOCIAL_LEXICON = KeywordLexicon(
    positive=(
        "buy", "buying", "bullish", "moon", "rocket", "gain", "profit", "up",
        "long", "growth", "invest", "holding", "strong buy", "good buy",
        "great opportunity", "undervalued", "breakout", "rally", "surge",
        "beat expectations", "positive",
    ),
    negative=(
        "sell", "selling", "bearish", "crash", "loss", "down", "short", "weak",
        "bad", "overvalued", "dump", "fall", "decline", "drop", "correction",
        "bubble", "avoid", "risk", "danger", "stay away", "miss expectations",
        "negative", "disappointing",
    ),
)


# ============================================================================
# Result Schemas
# ============================================================================


class KeywordScore(BaseModel):
    """Sentiment of a single text."""

    score: int = Field(ge=1, le=10, description="Sentiment on a 1-10 scale")
    sentiment: Polarity
    impact: ImpactLevel
    keywords: list[str] = Field(default_factory=list, description="Matched terms as +term / -term")
    confidence: float = Field(ge=0, le=100)
    positive_count: int = 0
    negative_count: int = 0
    impact_count: int = 0

    @property
    def net(self) -> int:
        """Positive minus negative matches."""
        return self.positive_count - self.negative_count


class AggregateScore(BaseModel):
    """Sentiment across many texts, newest first."""

    score: float = Field(ge=1, le=10)
    sentiment: Polarity
    impact: ImpactLevel
    keywords: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=100)
    positive_count: int = 0
    negative_count: int = 0
    neutral_count: int = 0
    sample_size: int = 0


class Post(BaseModel):
    """Community post reduced to the fields used for scoring."""

    title: str = ""
    body: str = ""
    votes: int = 0

    @property
    def text(self) -> str:
        return f"{self.title} {self.body}"


def to_percent(score: float) -> float:
    """Rescale a 1-10 score to 0-100."""
    return max(0.0, min(100.0, score * 10))


# ============================================================================
# Scorer
# ============================================================================


class KeywordSentimentScorer:
    """Scores text against a keyword lexicon.

    Example:
        scorer = KeywordSentimentScorer()
        result = scorer.score("Record profit and strong growth")
        # result.sentiment == "positive", result.score == 10
    """

    #: Headlines scanned per aggregate before confidence saturates
    FULL_CONFIDENCE_SAMPLE = 15
    #: Matched terms before a single-text confidence saturates
    FULL_CONFIDENCE_MATCHES = 5

    def __init__(
        self,
        lexicon: KeywordLexicon = NEWS_LEXICON,
        post_lexicon: KeywordLexicon = SOCIAL_LEXICON,
    ) -> None:
        """Initialize the scorer.

        Args:
            lexicon: Terms used by ``score`` and ``aggregate``.
            post_lexicon: Terms used by ``score_posts``.
        """
        self.lexicon = lexicon
        self.post_lexicon = post_lexicon

    @staticmethod
    def _matches(text: str, terms: Iterable[str]) -> list[str]:
        return [term for term in terms if term in text]

    def score(self, text: str) -> KeywordScore:
        """Score a single text on a 1-10 scale.

        Args:
            text: Headline or body text.

        Returns:
            KeywordScore with polarity, impact level and matched terms.
        """
        lowered = text.lower()
        positive = self._matches(lowered, self.lexicon.positive)
        negative = self._matches(lowered, self.lexicon.negative)
        impact_count = len(self._matches(lowered, self.lexicon.impact))

        pos, neg = len(positive), len(negative)
        net = pos - neg

        sentiment: Polarity
        if net > 1:
            sentiment = "positive"
            value = min(10, 6 + pos)
        elif net < -1:
            sentiment = "negative"
            value = max(1, 5 - neg)
        else:
            sentiment = "neutral"
            value = 5

        # Market-moving events push further in the same direction
        if impact_count > 2:
            value = min(10, value + 1) if sentiment == "positive" else max(1, value - 1)

        impact: ImpactLevel
        if impact_count >= 3 or abs(net) >= 4:
            impact = "high"
        elif impact_count >= 1 or abs(net) >= 2:
            impact = "medium"
        else:
            impact = "low"

        matched = pos + neg + impact_count
        keywords = [f"+{t}" for t in positive] + [f"-{t}" for t in negative]

        return KeywordScore(
            score=value,
            sentiment=sentiment,
            impact=impact,
            keywords=keywords[:5],
            confidence=min(100.0, matched / self.FULL_CONFIDENCE_MATCHES * 100),
            positive_count=pos,
            negative_count=neg,
            impact_count=impact_count,
        )

    def aggregate(self, scores: Sequence[KeywordScore]) -> AggregateScore:
        """Combine per-text scores, newest first.

        Newer texts weigh more: the i-th of n texts has weight n - i.

        Args:
            scores: Per-text scores ordered newest first.

        Returns:
            AggregateScore; neutral 5 with zero confidence when empty.
        """
        n = len(scores)
        if n == 0:
            return AggregateScore(score=5, sentiment="neutral", impact="low", confidence=0)

        weighted = 0.0
        total_weight = 0
        counts: Counter[str] = Counter()
        high_impact = 0
        keyword_counts: Counter[str] = Counter()

        for i, item in enumerate(scores):
            weight = n - i
            weighted += item.score * weight
            total_weight += weight
            counts[item.sentiment] += 1
            if item.impact == "high":
                high_impact += 1
            keyword_counts.update(item.keywords)

        positive, negative = counts["positive"], counts["negative"]
        sentiment: Polarity
        if positive > negative * 1.5:
            sentiment = "positive"
        elif negative > positive * 1.5:
            sentiment = "negative"
        else:
            sentiment = "neutral"

        ratio = high_impact / n
        impact: ImpactLevel = "high" if ratio > 0.4 else "medium" if ratio > 0.2 else "low"

        return AggregateScore(
            score=_round_half_up(weighted / total_weight, 1),
            sentiment=sentiment,
            impact=impact,
            keywords=[kw for kw, _ in keyword_counts.most_common(8)],
            confidence=min(100.0, n / self.FULL_CONFIDENCE_SAMPLE * 100),
            positive_count=positive,
            negative_count=negative,
            neutral_count=counts["neutral"],
            sample_size=n,
        )

    def score_posts(self, posts: Sequence[Post], symbol: str) -> int:
        """Vote-weighted polarity of posts mentioning a symbol, 0-100.

        Each relevant post counts +1, -1 or 0 by whether bullish or
        bearish terms dominate, weighted by ``max(1, ln(votes + 2))``.
        The sum is divided by the number of relevant posts and mapped to
        ``50 + avg * 25``.

        Args:
            posts: Candidate posts.
            symbol: Symbol a post must mention to count.

        Returns:
            Score 0-100; 50 when no post mentions the symbol.
        """
        needle = symbol.lower()
        relevant = [post for post in posts if needle in post.text.lower()]
        if not relevant:
            return 50

        total = 0.0
        for post in relevant:
            text = post.text.lower()
            bullish = len(self._matches(text, self.post_lexicon.positive))
            bearish = len(self._matches(text, self.post_lexicon.negative))
            polarity = 1 if bullish > bearish else -1 if bearish > bullish else 0
            weight = max(1.0, math.log(max(post.votes, 0) + 2))
            total += polarity * weight

        average = total / len(relevant)
        score = _round_half_up(50 + average * 25)
        logger.debug("posts_scored", symbol=symbol, relevant=len(relevant), score=score)
        return int(max(0, min(100, score)))


def _round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (2.5 -> 3)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5 + 1e-9) / factor
