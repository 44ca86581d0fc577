"""Source strategies that produce sentiment signals.

- PriceActionSignalStrategy: scores recent candles from any
  historical-capable strategy
- NewsHeadlineStrategy: keyword-scores a headline RSS feed
- SocialBuzzStrategy: vote-weights community posts mentioning the symbol
"""

import asyncio
import re
import xml.etree.ElementTree as ET
from datetime import UTC, datetime, timedelta

import httpx
import structlog
from pydantic import BaseModel

from stockpulse.data.models import Capability, SentimentSignal, SignalSource
from stockpulse.data.strategies import BROWSER_HEADERS, HttpSourceStrategy, SourceStrategy
from stockpulse.errors import UnsupportedCapability, UpstreamError, UpstreamInvalidPayload
from stockpulse.sentiment.fusion import SIGNAL_WEIGHTS
from stockpulse.sentiment.keywords import KeywordSentimentScorer, Post, to_percent
from stockpulse.sentiment.price_action import score_price_action

logger = structlog.get_logger(__name__)


def _signal(source: SignalSource, score: float, origin: str) -> SentimentSignal:
    return SentimentSignal(
        source=source,
        score=max(0.0, min(100.0, score)),
        weight=SIGNAL_WEIGHTS[source],
        origin=origin,
    )


# ============================================================================
# Price action
# ============================================================================


class PriceActionSignalStrategy(SourceStrategy):
    """Price-action score computed from another strategy's candles.

    Example:
        signal = PriceActionSignalStrategy(SecondaryVendorStrategy())
        result = await signal.fetch_sentiment_signal("INFY", SignalSource.PRICE)
    """

    capabilities = frozenset({Capability.SENTIMENT})

    def __init__(self, candles: SourceStrategy, range_: str = "1mo") -> None:
        """Initialize the strategy.

        Args:
            candles: Strategy supporting the historical capability.
            range_: Lookback requested from ``candles``.
        """
        if not candles.supports(Capability.HISTORICAL):
            raise ValueError(f"{candles.name} cannot serve historical candles")
        self.candles = candles
        self.range_ = range_
        self.name = f"price_action:{candles.name}"
        self.timeout = candles.timeout_for(Capability.HISTORICAL)

    async def fetch_sentiment_signal(self, symbol: str, source: SignalSource) -> SentimentSignal:
        """Score the latest candles for a symbol."""
        if source != SignalSource.PRICE:
            raise UnsupportedCapability(self.name, f"sentiment:{source.value}")

        series = await self.candles.fetch_historical(symbol, "1d", self.range_)
        score = score_price_action(series.candles, source=self.name)
        return _signal(SignalSource.PRICE, score, self.name)

    async def close(self) -> None:
        await self.candles.close()


# ============================================================================
# News headlines
# ============================================================================


class Headline(BaseModel):
    """One feed item reduced to what scoring needs."""

    title: str
    summary: str = ""
    source: str = "Unknown"
    url: str = ""
    published_at: datetime


def parse_headline_feed(xml_content: str) -> list[Headline]:
    """Parse an RSS headline feed.

    Args:
        xml_content: Raw RSS XML.

    Returns:
        Parsed headlines in feed order; empty if the XML is malformed.
    """
    items: list[Headline] = []

    try:
        root = ET.fromstring(xml_content)
        channel = root.find("channel")
        if channel is None:
            return items

        for item in channel.findall("item"):
            title_elem = item.find("title")
            if title_elem is None or not title_elem.text:
                continue

            link_elem = item.find("link")
            pub_date_elem = item.find("pubDate")
            source_elem = item.find("source")
            description_elem = item.find("description")

            pub_date_str = pub_date_elem.text if pub_date_elem is not None else None
            published_at = _parse_rfc2822_date(pub_date_str) if pub_date_str else datetime.now(UTC)

            description = description_elem.text if description_elem is not None else ""
            items.append(
                Headline(
                    title=title_elem.text,
                    summary=_strip_html(description)[:500] if description else "",
                    source=(source_elem.text or "Unknown") if source_elem is not None else "Unknown",
                    url=(link_elem.text or "") if link_elem is not None else "",
                    published_at=published_at,
                )
            )

    except ET.ParseError as e:
        logger.warning("xml_parse_error", error=str(e))

    return items


def _parse_rfc2822_date(date_str: str) -> datetime:
    """Parse RFC 2822 date format, defaulting to now."""
    formats = [
        "%a, %d %b %Y %H:%M:%S %z",
        "%a, %d %b %Y %H:%M:%S GMT",
        "%Y-%m-%dT%H:%M:%SZ",
    ]

    for fmt in formats:
        try:
            parsed = datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    return datetime.now(UTC)


def _strip_html(html: str) -> str:
    return re.sub(r"<[^>]+>", "", html).strip()


class NewsHeadlineStrategy(HttpSourceStrategy):
    """News sentiment from a headline search feed.

    Headlines from the last ``days_back`` days are keyword-scored newest
    first, aggregated, and rescaled from 1-10 to 0-100.
    """

    name = "news_headlines"
    timeout = 10.0
    capabilities = frozenset({Capability.SENTIMENT})

    def __init__(
        self,
        feed_url: str = "https://news.google.com/rss/search",
        http_client: httpx.AsyncClient | None = None,
        scorer: KeywordSentimentScorer | None = None,
        days_back: int = 7,
        max_headlines: int = 30,
        query_suffix: str = "stock NSE",
    ) -> None:
        super().__init__(feed_url, http_client=http_client, headers=BROWSER_HEADERS)
        self.scorer = scorer or KeywordSentimentScorer()
        self.days_back = days_back
        self.max_headlines = max_headlines
        self.query_suffix = query_suffix

    async def fetch_headlines(self, symbol: str) -> list[Headline]:
        """Fetch recent headlines for a symbol, newest first."""
        response = await self._get(
            "",
            params={
                "q": f"{symbol} {self.query_suffix}".strip(),
                "hl": "en-IN",
                "gl": "IN",
                "ceid": "IN:en",
            },
        )
        headlines = parse_headline_feed(response.text)

        cutoff = datetime.now(UTC) - timedelta(days=self.days_back)
        recent = [h for h in headlines if h.published_at >= cutoff]
        recent.sort(key=lambda h: h.published_at, reverse=True)
        return recent[: self.max_headlines]

    async def fetch_sentiment_signal(self, symbol: str, source: SignalSource) -> SentimentSignal:
        """Score recent headlines for a symbol.

        Raises:
            UpstreamInvalidPayload: If the feed has no recent headlines.
        """
        if source != SignalSource.NEWS:
            raise UnsupportedCapability(self.name, f"sentiment:{source.value}")

        headlines = await self.fetch_headlines(symbol)
        if not headlines:
            raise UpstreamInvalidPayload(self.name, "no recent headlines")

        scores = [self.scorer.score(f"{h.title} {h.summary}") for h in headlines]
        overall = self.scorer.aggregate(scores)

        self._logger.debug(
            "news_scored",
            symbol=symbol,
            headlines=len(headlines),
            score=overall.score,
            sentiment=overall.sentiment,
            keywords=overall.keywords,
        )
        return _signal(SignalSource.NEWS, to_percent(overall.score), self.name)


# ============================================================================
# Social buzz
# ============================================================================


class SocialBuzzStrategy(HttpSourceStrategy):
    """Social sentiment from community search results.

    Each community is searched concurrently; a community that fails is
    skipped. The strategy fails only when every community fails.
    """

    name = "social_buzz"
    timeout = 10.0
    capabilities = frozenset({Capability.SENTIMENT})

    def __init__(
        self,
        base_url: str = "https://www.reddit.com",
        communities: list[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        scorer: KeywordSentimentScorer | None = None,
        limit: int = 25,
    ) -> None:
        super().__init__(
            base_url,
            http_client=http_client,
            headers={"User-Agent": BROWSER_HEADERS["User-Agent"]},
        )
        self.communities = communities or ["IndiaInvestments", "stocks", "wallstreetbets"]
        self.scorer = scorer or KeywordSentimentScorer()
        self.limit = limit

    async def _search(self, community: str, symbol: str) -> list[Post]:
        data = await self._request(
            f"/r/{community}/search.json",
            params={"q": symbol, "limit": self.limit, "sort": "relevance", "t": "week"},
        )
        if not isinstance(data, dict):
            raise UpstreamInvalidPayload(self.name, "unexpected search document")
        children = (data.get("data") or {}).get("children") or []

        posts = []
        for child in children:
            post = child.get("data") or {}
            posts.append(
                Post(
                    title=post.get("title") or "",
                    body=post.get("selftext") or "",
                    votes=int(post.get("score") or 0),
                )
            )
        return posts

    async def fetch_posts(self, symbol: str) -> list[Post]:
        """Search every community for a symbol.

        Raises:
            UpstreamError: If every community search fails.
        """
        results = await asyncio.gather(
            *(self._search(c, symbol) for c in self.communities),
            return_exceptions=True,
        )

        posts: list[Post] = []
        failures = 0
        for community, result in zip(self.communities, results, strict=True):
            if isinstance(result, BaseException):
                failures += 1
                self._logger.warning(
                    "community_search_failed", community=community, error=str(result)
                )
                continue
            posts.extend(result)

        if self.communities and failures == len(self.communities):
            raise UpstreamError(f"{self.name} all community searches failed", source=self.name)
        return posts

    async def fetch_sentiment_signal(self, symbol: str, source: SignalSource) -> SentimentSignal:
        """Score community posts mentioning a symbol."""
        if source != SignalSource.SOCIAL:
            raise UnsupportedCapability(self.name, f"sentiment:{source.value}")

        posts = await self.fetch_posts(symbol)
        score = self.scorer.score_posts(posts, symbol)
        self._logger.debug("social_scored", symbol=symbol, posts=len(posts), score=score)
        return _signal(SignalSource.SOCIAL, score, self.name)
