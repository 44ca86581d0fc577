"""Source strategies for quote and candle data.

Each strategy adapts one upstream provider to a uniform fetch contract.
The resolver treats them as opaque and interchangeable: it only needs
``name``, ``timeout_for`` and the capability methods below.

Variants, in default priority order:
- PrimaryExchangeStrategy: exchange quote API (httpx)
- SecondaryVendorStrategy: Yahoo Finance (yfinance in a worker thread)
- TertiaryVendorStrategy: keyed global-quote vendor (httpx)
- StaticFallbackStrategy: last known closes and synthetic candles
"""

import asyncio
import hashlib
import random
from abc import ABC
from datetime import datetime, timedelta
from typing import Any

import httpx
import structlog
import yfinance as yf

from stockpulse.data.models import (
    Candle,
    Capability,
    HistoricalSeries,
    Quote,
    SentimentSignal,
    SignalSource,
)
from stockpulse.errors import UnsupportedCapability, UpstreamError, UpstreamInvalidPayload

logger = structlog.get_logger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
}


class SourceStrategy(ABC):
    """Abstract base class for upstream provider adapters.

    Subclasses declare the capabilities they serve and override the
    matching fetch methods. Unsupported capabilities raise
    ``UnsupportedCapability`` so the resolver can skip them.

    Example:
        class FakeStrategy(SourceStrategy):
            name = "fake"
            capabilities = frozenset({Capability.QUOTE})

            async def fetch_quote(self, symbol: str) -> Quote:
                return Quote(symbol=symbol, price=101.0, source_name=self.name)
    """

    #: Unique name used as provenance on resolved values
    name: str = "source"
    #: Time box for a single call, in seconds
    timeout: float = 10.0
    #: Capabilities this strategy can serve
    capabilities: frozenset[Capability] = frozenset()

    def supports(self, capability: Capability) -> bool:
        """Check whether this strategy serves a capability."""
        return capability in self.capabilities

    def timeout_for(self, capability: Capability) -> float:  # noqa: ARG002
        """Time box for a capability; override for per-capability limits."""
        return self.timeout

    async def fetch_quote(self, symbol: str) -> Quote:
        """Fetch the latest quote for a normalized symbol."""
        raise UnsupportedCapability(self.name, Capability.QUOTE.value)

    async def fetch_historical(
        self,
        symbol: str,
        interval: str = "1d",
        range_: str = "1mo",
    ) -> HistoricalSeries:
        """Fetch candles for a normalized symbol, oldest first."""
        raise UnsupportedCapability(self.name, Capability.HISTORICAL.value)

    async def fetch_sentiment_signal(self, symbol: str, source: SignalSource) -> SentimentSignal:
        """Fetch one sentiment input for a normalized symbol."""
        raise UnsupportedCapability(self.name, f"{Capability.SENTIMENT.value}:{source.value}")

    async def close(self) -> None:
        """Release any resources held by the strategy."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


# =============================================================================
# HTTP base
# =============================================================================


class HttpSourceStrategy(SourceStrategy):
    """Strategy backed by a JSON HTTP API.

    The httpx client is shared when one is injected; otherwise a private
    client is created lazily and closed by ``close``.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            base_url: Provider base URL.
            http_client: Shared httpx client, if any.
            headers: Extra headers sent with every request.
        """
        self.base_url = base_url.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None
        self._headers = headers or {}
        self._logger = logger.bind(component="source_strategy", source=self.name)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0, follow_redirects=True)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this strategy created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """Issue a GET and map transport and status failures.

        Raises:
            UpstreamError: On transport errors or any non-200 status.
        """
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        self._logger.debug("upstream_request", url=url, params=params)

        try:
            response = await client.get(url, params=params, headers=self._headers)
        except httpx.RequestError as e:
            raise UpstreamError(f"{self.name} request failed: {e}", source=self.name) from e

        if response.status_code == 429:
            raise UpstreamError(
                f"{self.name} rate limited upstream",
                source=self.name,
                details={"status": 429, "retry_after": response.headers.get("Retry-After")},
            )
        if response.status_code != 200:
            raise UpstreamError(
                f"{self.name} returned {response.status_code}",
                source=self.name,
                details={"status": response.status_code},
            )
        return response

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document.

        Raises:
            UpstreamError: On transport or status failures.
            UpstreamInvalidPayload: If the body is not JSON.
        """
        response = await self._get(path, params)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamInvalidPayload(self.name, "response is not JSON") from e


def _round2(value: float) -> float:
    return round(float(value), 2)


def _as_float(value: Any, default: float | None = None) -> float | None:
    """Convert a provider field to float, tolerating blanks and strings."""
    if value is None or value == "":
        return default
    try:
        return float(str(value).replace("%", "").replace(",", ""))
    except ValueError:
        return default


# =============================================================================
# Primary: exchange quote API
# =============================================================================


class PrimaryExchangeStrategy(HttpSourceStrategy):
    """Exchange's own quote endpoint; most current for listed equities."""

    name = "primary_exchange"
    timeout = 8.0
    capabilities = frozenset({Capability.QUOTE})

    QUOTE_PATH = "/api/quote-equity"

    def __init__(
        self,
        base_url: str = "https://www.nseindia.com",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            base_url,
            http_client=http_client,
            headers={**BROWSER_HEADERS, "Referer": f"{base_url.rstrip('/')}/"},
        )

    async def fetch_quote(self, symbol: str) -> Quote:
        """Fetch a quote from the exchange.

        Raises:
            UpstreamError: If the request fails.
            UpstreamInvalidPayload: If price information is missing.
        """
        data = await self._request(self.QUOTE_PATH, params={"symbol": symbol})
        price_info = data.get("priceInfo") if isinstance(data, dict) else None
        if not price_info:
            raise UpstreamInvalidPayload(self.name, "missing priceInfo")

        price = _as_float(price_info.get("lastPrice"))
        if price is None:
            raise UpstreamInvalidPayload(self.name, "missing lastPrice")

        day_range = price_info.get("intraDayHighLow") or {}
        info = data.get("info") or {}

        return Quote(
            symbol=symbol,
            price=_round2(price),
            change=_round2(_as_float(price_info.get("change"), 0.0) or 0.0),
            change_percent=_round2(_as_float(price_info.get("pChange"), 0.0) or 0.0),
            open=_as_float(price_info.get("open"), price),
            high=_as_float(day_range.get("max"), price),
            low=_as_float(day_range.get("min"), price),
            volume=int(_as_float(price_info.get("totalTradedVolume"), 0.0) or 0),
            previous_close=_as_float(price_info.get("previousClose"), price),
            company_name=info.get("companyName") or symbol,
            source_name=self.name,
        )


# =============================================================================
# Secondary: Yahoo Finance
# =============================================================================


class SecondaryVendorStrategy(SourceStrategy):
    """Yahoo Finance via yfinance, run in a worker thread."""

    name = "secondary_vendor"
    timeout = 8.0
    capabilities = frozenset({Capability.QUOTE, Capability.HISTORICAL})

    #: Charts are slower than quotes
    historical_timeout: float = 15.0

    def __init__(self, market_suffix: str = ".NS") -> None:
        """Initialize the strategy.

        Args:
            market_suffix: Suffix appended to symbols for this vendor.
        """
        self.market_suffix = market_suffix
        self._logger = logger.bind(component="source_strategy", source=self.name)

    def timeout_for(self, capability: Capability) -> float:
        """Charts get a longer time box than quotes."""
        if capability == Capability.HISTORICAL:
            return self.historical_timeout
        return self.timeout

    def _ticker_symbol(self, symbol: str) -> str:
        return f"{symbol}{self.market_suffix}"

    async def fetch_quote(self, symbol: str) -> Quote:
        """Fetch a quote from Yahoo Finance.

        Raises:
            UpstreamInvalidPayload: If no market price is available.
        """
        ticker = await asyncio.to_thread(lambda: yf.Ticker(self._ticker_symbol(symbol)))
        info = await asyncio.to_thread(lambda: ticker.info)

        info = info or {}
        price = _as_float(info.get("regularMarketPrice"))
        if price is None:
            price = _as_float(info.get("currentPrice"))
        if price is None:
            raise UpstreamInvalidPayload(self.name, "no market price")

        previous_close = _as_float(info.get("previousClose"), price) or price
        change = price - previous_close
        change_percent = (change / previous_close) * 100 if previous_close > 0 else 0.0

        return Quote(
            symbol=symbol,
            price=_round2(price),
            change=_round2(change),
            change_percent=_round2(change_percent),
            open=_as_float(info.get("regularMarketOpen"), price),
            high=_as_float(info.get("regularMarketDayHigh"), price),
            low=_as_float(info.get("regularMarketDayLow"), price),
            volume=int(info.get("regularMarketVolume") or 0),
            previous_close=previous_close,
            company_name=info.get("longName") or info.get("shortName") or symbol,
            source_name=self.name,
        )

    async def fetch_historical(
        self,
        symbol: str,
        interval: str = "1d",
        range_: str = "1mo",
    ) -> HistoricalSeries:
        """Fetch candles from Yahoo Finance.

        Rows with a missing close are dropped.
        """
        ticker = await asyncio.to_thread(lambda: yf.Ticker(self._ticker_symbol(symbol)))
        frame = await asyncio.to_thread(lambda: ticker.history(period=range_, interval=interval))

        candles: list[Candle] = []
        if frame is not None and not frame.empty:
            for timestamp, row in frame.iterrows():
                close = _as_float(row.get("Close"))
                if close is None or close != close:  # NaN
                    continue
                candles.append(
                    Candle(
                        timestamp=timestamp.to_pydatetime(),
                        open=_as_float(row.get("Open"), close) or close,
                        high=_as_float(row.get("High"), close) or close,
                        low=_as_float(row.get("Low"), close) or close,
                        close=close,
                        volume=int(_as_float(row.get("Volume"), 0.0) or 0),
                    )
                )

        return HistoricalSeries(
            symbol=symbol,
            interval=interval,
            range=range_,
            candles=candles,
            source_name=self.name,
        )


# =============================================================================
# Tertiary: keyed global-quote vendor
# =============================================================================


class TertiaryVendorStrategy(HttpSourceStrategy):
    """Alpha Vantage style vendor; needs an API key."""

    name = "tertiary_vendor"
    timeout = 8.0
    capabilities = frozenset({Capability.QUOTE, Capability.HISTORICAL})

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://www.alphavantage.co",
        market_suffix: str = ".BSE",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_url, http_client=http_client)
        self.api_key = api_key
        self.market_suffix = market_suffix

    @property
    def is_configured(self) -> bool:
        """Check if API key is configured."""
        return bool(self.api_key)

    async def _query(self, function: str, symbol: str, **params: Any) -> dict[str, Any]:
        if not self.is_configured:
            raise UpstreamError(f"{self.name} API key not configured", source=self.name)
        data = await self._request(
            "/query",
            params={
                "function": function,
                "symbol": f"{symbol}{self.market_suffix}",
                "apikey": self.api_key,
                **params,
            },
        )
        if not isinstance(data, dict):
            raise UpstreamInvalidPayload(self.name, "unexpected document")
        if "Note" in data or "Information" in data:
            raise UpstreamError(
                f"{self.name} throttled: {data.get('Note') or data.get('Information')}",
                source=self.name,
            )
        return data

    async def fetch_quote(self, symbol: str) -> Quote:
        """Fetch a quote from the vendor's global-quote function."""
        data = await self._query("GLOBAL_QUOTE", symbol)
        quote = data.get("Global Quote") or {}
        price = _as_float(quote.get("05. price"))
        if price is None:
            raise UpstreamInvalidPayload(self.name, "missing price")

        return Quote(
            symbol=symbol,
            price=_round2(price),
            change=_round2(_as_float(quote.get("09. change"), 0.0) or 0.0),
            change_percent=_round2(_as_float(quote.get("10. change percent"), 0.0) or 0.0),
            open=_as_float(quote.get("02. open"), price),
            high=_as_float(quote.get("03. high"), price),
            low=_as_float(quote.get("04. low"), price),
            volume=int(_as_float(quote.get("06. volume"), 0.0) or 0),
            previous_close=_as_float(quote.get("08. previous close"), price),
            source_name=self.name,
        )

    async def fetch_historical(
        self,
        symbol: str,
        interval: str = "1d",
        range_: str = "1mo",
    ) -> HistoricalSeries:
        """Fetch daily candles; only the "1d" interval is offered."""
        if interval != "1d":
            raise UnsupportedCapability(self.name, f"historical:{interval}")

        data = await self._query("TIME_SERIES_DAILY", symbol, outputsize="compact")
        series = data.get("Time Series (Daily)") or {}

        candles = []
        for day in sorted(series)[-range_to_bars(range_):]:
            row = series[day]
            close = _as_float(row.get("4. close"))
            if close is None:
                continue
            candles.append(
                Candle(
                    timestamp=datetime.strptime(day, "%Y-%m-%d"),
                    open=_as_float(row.get("1. open"), close) or close,
                    high=_as_float(row.get("2. high"), close) or close,
                    low=_as_float(row.get("3. low"), close) or close,
                    close=close,
                    volume=int(_as_float(row.get("5. volume"), 0.0) or 0),
                )
            )

        return HistoricalSeries(
            symbol=symbol,
            interval=interval,
            range=range_,
            candles=candles,
            source_name=self.name,
        )


# =============================================================================
# Static fallback
# =============================================================================


def range_to_bars(range_: str) -> int:
    """Approximate number of daily bars in a lookback range."""
    bars_map = {
        "1d": 1,
        "5d": 5,
        "1mo": 22,
        "3mo": 66,
        "6mo": 126,
        "1y": 252,
        "2y": 504,
    }
    return bars_map.get(range_, 22)


# Last known session closes: (price, previous_close, open, high, low, name)
LAST_KNOWN_CLOSES: dict[str, tuple[float, float, float, float, float, str]] = {
    "RELIANCE": (1504.20, 1486.90, 1489.10, 1508.30, 1488.10, "Reliance Industries Limited"),
    "TCS": (4150.00, 4138.00, 4140.00, 4165.00, 4130.00, "Tata Consultancy Services Limited"),
    "HDFCBANK": (1742.50, 1737.30, 1738.00, 1745.00, 1735.00, "HDFC Bank Limited"),
    "INFY": (1850.75, 1853.90, 1852.00, 1855.00, 1847.00, "Infosys Limited"),
    "ICICIBANK": (1295.00, 1286.50, 1287.00, 1298.00, 1285.00, "ICICI Bank Limited"),
    "HINDUNILVR": (2385.60, 2398.00, 2395.00, 2400.00, 2380.00, "Hindustan Unilever Limited"),
    "ITC": (485.30, 483.20, 483.50, 486.00, 482.00, "ITC Limited"),
    "BHARTIARTL": (1675.80, 1660.50, 1662.00, 1680.00, 1658.00, "Bharti Airtel Limited"),
    "SBIN": (825.45, 819.25, 820.00, 828.00, 818.00, "State Bank of India"),
    "LT": (3698.25, 3717.00, 3715.00, 3720.00, 3690.00, "Larsen & Toubro Limited"),
    "AXISBANK": (1145.30, 1137.50, 1138.00, 1148.00, 1136.00, "Axis Bank Limited"),
    "BAJFINANCE": (7250.15, 7204.85, 7210.00, 7265.00, 7200.00, "Bajaj Finance Limited"),
    "MARUTI": (13024.70, 13110.15, 13100.00, 13120.00, 13010.00, "Maruti Suzuki India Limited"),
    "TITAN": (3542.90, 3520.75, 3525.00, 3550.00, 3518.00, "Titan Company Limited"),
    "WIPRO": (578.60, 581.00, 580.00, 582.00, 577.00, "Wipro Limited"),
    "TATAMOTORS": (945.70, 933.35, 935.00, 948.00, 932.00, "Tata Motors Limited"),
}

DEFAULT_CLOSE = (1000.0, 995.0, 996.0, 1005.0, 992.0)


class StaticFallbackStrategy(SourceStrategy):
    """Deterministic last-resort data; never fails.

    Quotes come from a table of last known closes. Candles are a
    synthetic random walk seeded by the symbol, so the same symbol and
    range always produce the same series.
    """

    name = "static_fallback"
    timeout = 1.0
    capabilities = frozenset({Capability.QUOTE, Capability.HISTORICAL})

    def __init__(
        self,
        closes: dict[str, tuple[float, float, float, float, float, str]] | None = None,
        volatility: float = 0.015,
    ) -> None:
        """Initialize the strategy.

        Args:
            closes: Last known closes keyed by normalized symbol.
            volatility: Daily move size for synthetic candles.
        """
        self.closes = LAST_KNOWN_CLOSES if closes is None else closes
        self.volatility = volatility

    def _close_for(self, symbol: str) -> tuple[float, float, float, float, float, str]:
        known = self.closes.get(symbol)
        if known is not None:
            return known
        return (*DEFAULT_CLOSE, f"{symbol} Limited")

    async def fetch_quote(self, symbol: str) -> Quote:
        """Return the last known close for a symbol."""
        price, previous_close, open_, high, low, name = self._close_for(symbol)
        change = price - previous_close

        return Quote(
            symbol=symbol,
            price=price,
            change=_round2(change),
            change_percent=_round2((change / previous_close) * 100),
            open=open_,
            high=high,
            low=low,
            volume=0,
            previous_close=previous_close,
            company_name=name,
            source_name=self.name,
        )

    async def fetch_historical(
        self,
        symbol: str,
        interval: str = "1d",
        range_: str = "1mo",
    ) -> HistoricalSeries:
        """Generate a synthetic daily series ending at the last known close."""
        return HistoricalSeries(
            symbol=symbol,
            interval=interval,
            range=range_,
            candles=self.synthetic_candles(symbol, range_to_bars(range_)),
            source_name=self.name,
        )

    def synthetic_candles(self, symbol: str, count: int) -> list[Candle]:
        """Build ``count`` daily candles walking back from the last close.

        Args:
            symbol: Normalized symbol; seeds the generator.
            count: Number of candles.

        Returns:
            Candles oldest first, the last one closing at the known price.
        """
        seed = int(hashlib.md5(symbol.encode()).hexdigest()[:8], 16)
        rng = random.Random(seed)
        close = self._close_for(symbol)[0]
        today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)

        candles: list[Candle] = []
        for i in range(count):
            move = rng.uniform(-self.volatility, self.volatility)
            open_ = close / (1 + move)
            high = max(open_, close) * (1 + rng.uniform(0, self.volatility / 2))
            low = min(open_, close) * (1 - rng.uniform(0, self.volatility / 2))
            candles.append(
                Candle(
                    timestamp=today - timedelta(days=i),
                    open=_round2(open_),
                    high=_round2(high),
                    low=_round2(low),
                    close=_round2(close),
                    volume=rng.randint(500_000, 5_000_000),
                )
            )
            close = open_

        candles.reverse()
        return candles
