"""Tests for source strategies."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from stockpulse.data.models import Capability, Quote, SignalSource
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
from stockpulse.errors import UnsupportedCapability, UpstreamError, UpstreamInvalidPayload


def _response(status_code: int, **kwargs: object) -> httpx.Response:
    return httpx.Response(
        status_code,
        request=httpx.Request("GET", "https://example.test/api"),
        **kwargs,
    )


class QuoteOnlyStrategy(SourceStrategy):
    """Minimal concrete strategy for base-class tests."""

    name = "quote_only"
    capabilities = frozenset({Capability.QUOTE})

    async def fetch_quote(self, symbol: str) -> Quote:
        return Quote(symbol=symbol, price=10.0, source_name=self.name)


class TestSourceStrategy:
    """Tests for the SourceStrategy base class."""

    def test_supports(self) -> None:
        """Test supports reflects declared capabilities."""
        strategy = QuoteOnlyStrategy()
        assert strategy.supports(Capability.QUOTE) is True
        assert strategy.supports(Capability.HISTORICAL) is False

    def test_timeout_for_defaults_to_timeout(self) -> None:
        """Test the default time box is the class timeout."""
        strategy = QuoteOnlyStrategy()
        assert strategy.timeout_for(Capability.QUOTE) == strategy.timeout

    @pytest.mark.asyncio
    async def test_unimplemented_capabilities_raise(self) -> None:
        """Test unimplemented fetches raise UnsupportedCapability."""
        strategy = QuoteOnlyStrategy()
        with pytest.raises(UnsupportedCapability):
            await strategy.fetch_historical("INFY")
        with pytest.raises(UnsupportedCapability):
            await strategy.fetch_sentiment_signal("INFY", SignalSource.NEWS)

    def test_repr(self) -> None:
        """Test repr includes the strategy name."""
        assert "quote_only" in repr(QuoteOnlyStrategy())


class TestHttpSourceStrategy:
    """Tests for shared HTTP handling."""

    @pytest.mark.asyncio
    async def test_request_success(self) -> None:
        """Test JSON bodies are returned."""
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = _response(200, json={"ok": True})

        strategy = HttpSourceStrategy("https://example.test", http_client=client)
        assert await strategy._request("/api") == {"ok": True}
        client.get.assert_called_once()

    @pytest.mark.asyncio
    async def test_non_200_raises(self) -> None:
        """Test error statuses become UpstreamError."""
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = _response(503, text="down")

        strategy = HttpSourceStrategy("https://example.test", http_client=client)
        with pytest.raises(UpstreamError) as exc_info:
            await strategy._request("/api")
        assert exc_info.value.details["status"] == 503

    @pytest.mark.asyncio
    async def test_upstream_429(self) -> None:
        """Test upstream throttling is reported with Retry-After."""
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = _response(429, headers={"Retry-After": "30"})

        strategy = HttpSourceStrategy("https://example.test", http_client=client)
        with pytest.raises(UpstreamError) as exc_info:
            await strategy._request("/api")
        assert exc_info.value.details["retry_after"] == "30"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        """Test transport failures become UpstreamError."""
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = httpx.ConnectError("connection refused")

        strategy = HttpSourceStrategy("https://example.test", http_client=client)
        with pytest.raises(UpstreamError, match="request failed"):
            await strategy._request("/api")

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        """Test non-JSON bodies are invalid payloads."""
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = _response(200, text="<html>captcha</html>")

        strategy = HttpSourceStrategy("https://example.test", http_client=client)
        with pytest.raises(UpstreamInvalidPayload):
            await strategy._request("/api")

    @pytest.mark.asyncio
    async def test_close_leaves_shared_client_open(self) -> None:
        """Test an injected client is not closed by the strategy."""
        client = AsyncMock(spec=httpx.AsyncClient)
        strategy = HttpSourceStrategy("https://example.test", http_client=client)
        await strategy.close()
        client.aclose.assert_not_called()


class TestPrimaryExchangeStrategy:
    """Tests for PrimaryExchangeStrategy."""

    EXCHANGE_DOC = {
        "info": {"symbol": "RELIANCE", "companyName": "Reliance Industries Limited"},
        "priceInfo": {
            "lastPrice": 1504.2,
            "change": 17.3,
            "pChange": 1.1634,
            "previousClose": 1486.9,
            "open": 1489.1,
            "intraDayHighLow": {"min": 1488.1, "max": 1508.3},
            "totalTradedVolume": 5123456,
        },
    }

    @pytest.mark.asyncio
    async def test_fetch_quote(self) -> None:
        """Test exchange fields map onto a Quote."""
        strategy = PrimaryExchangeStrategy(http_client=AsyncMock(spec=httpx.AsyncClient))

        with patch.object(strategy, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = self.EXCHANGE_DOC
            quote = await strategy.fetch_quote("RELIANCE")

        mock_request.assert_called_once_with("/api/quote-equity", params={"symbol": "RELIANCE"})
        assert quote.price == 1504.2
        assert quote.change_percent == 1.16
        assert quote.high == 1508.3
        assert quote.low == 1488.1
        assert quote.volume == 5123456
        assert quote.company_name == "Reliance Industries Limited"
        assert quote.source_name == "primary_exchange"

    @pytest.mark.asyncio
    async def test_missing_price_info(self) -> None:
        """Test documents without priceInfo are invalid."""
        strategy = PrimaryExchangeStrategy(http_client=AsyncMock(spec=httpx.AsyncClient))

        with patch.object(strategy, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"info": {}}
            with pytest.raises(UpstreamInvalidPayload):
                await strategy.fetch_quote("RELIANCE")

    def test_quote_only(self) -> None:
        """Test the exchange strategy serves quotes only."""
        strategy = PrimaryExchangeStrategy()
        assert strategy.supports(Capability.QUOTE) is True
        assert strategy.supports(Capability.HISTORICAL) is False
        assert strategy.timeout == 8.0


class TestSecondaryVendorStrategy:
    """Tests for SecondaryVendorStrategy."""

    def test_timeouts(self) -> None:
        """Test charts get a longer time box than quotes."""
        strategy = SecondaryVendorStrategy()
        assert strategy.timeout_for(Capability.QUOTE) == 8.0
        assert strategy.timeout_for(Capability.HISTORICAL) == 15.0

    @pytest.mark.asyncio
    async def test_fetch_quote(self) -> None:
        """Test ticker info maps onto a Quote with the market suffix."""
        ticker = MagicMock()
        ticker.info = {
            "regularMarketPrice": 1850.75,
            "previousClose": 1853.90,
            "regularMarketOpen": 1852.0,
            "regularMarketDayHigh": 1855.0,
            "regularMarketDayLow": 1847.0,
            "regularMarketVolume": 1200000,
            "longName": "Infosys Limited",
        }

        with patch("yfinance.Ticker", return_value=ticker) as mock_ticker:
            quote = await SecondaryVendorStrategy(market_suffix=".NS").fetch_quote("INFY")

        mock_ticker.assert_called_once_with("INFY.NS")
        assert quote.price == 1850.75
        assert quote.change == -3.15
        assert quote.previous_close == 1853.90
        assert quote.volume == 1200000
        assert quote.company_name == "Infosys Limited"

    @pytest.mark.asyncio
    async def test_fetch_quote_without_price(self) -> None:
        """Test empty info is an invalid payload."""
        ticker = MagicMock()
        ticker.info = {}

        with patch("yfinance.Ticker", return_value=ticker):
            with pytest.raises(UpstreamInvalidPayload):
                await SecondaryVendorStrategy().fetch_quote("INFY")

    @pytest.mark.asyncio
    async def test_fetch_quote_current_price(self) -> None:
        """Test currentPrice is used when regularMarketPrice is absent."""
        ticker = MagicMock()
        ticker.info = {"currentPrice": 3920.4, "previousClose": 3900.0}

        with patch("yfinance.Ticker", return_value=ticker):
            quote = await SecondaryVendorStrategy().fetch_quote("TCS")

        assert quote.price == 3920.4
        assert quote.change == 20.4

    @pytest.mark.asyncio
    async def test_fetch_historical(self) -> None:
        """Test history rows become candles and NaN closes are dropped."""
        day1, day2, day3 = MagicMock(), MagicMock(), MagicMock()
        day1.to_pydatetime.return_value = datetime(2024, 1, 2)
        day2.to_pydatetime.return_value = datetime(2024, 1, 3)
        day3.to_pydatetime.return_value = datetime(2024, 1, 4)

        frame = MagicMock()
        frame.empty = False
        frame.iterrows.return_value = [
            (day1, {"Open": 10.0, "High": 11.0, "Low": 9.5, "Close": 10.5, "Volume": 100}),
            (day2, {"Open": 10.5, "High": 11.5, "Low": 10.0, "Close": float("nan"), "Volume": 0}),
            (day3, {"Open": 10.6, "High": 12.0, "Low": 10.2, "Close": 11.8, "Volume": 250}),
        ]
        ticker = MagicMock()
        ticker.history.return_value = frame

        with patch("yfinance.Ticker", return_value=ticker):
            series = await SecondaryVendorStrategy().fetch_historical("TCS", "1d", "5d")

        ticker.history.assert_called_once_with(period="5d", interval="1d")
        assert [c.close for c in series.candles] == [10.5, 11.8]
        assert series.candles[1].volume == 250
        assert series.source_name == "secondary_vendor"

    @pytest.mark.asyncio
    async def test_fetch_historical_empty(self) -> None:
        """Test an empty frame yields an empty series."""
        frame = MagicMock()
        frame.empty = True
        ticker = MagicMock()
        ticker.history.return_value = frame

        with patch("yfinance.Ticker", return_value=ticker):
            series = await SecondaryVendorStrategy().fetch_historical("TCS")

        assert series.candles == []


class TestTertiaryVendorStrategy:
    """Tests for TertiaryVendorStrategy."""

    @pytest.mark.asyncio
    async def test_not_configured(self) -> None:
        """Test a missing API key fails without a network call."""
        client = AsyncMock(spec=httpx.AsyncClient)
        strategy = TertiaryVendorStrategy(api_key=None, http_client=client)

        assert strategy.is_configured is False
        with pytest.raises(UpstreamError, match="not configured"):
            await strategy.fetch_quote("INFY")
        client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_quote(self) -> None:
        """Test global-quote fields map onto a Quote."""
        strategy = TertiaryVendorStrategy(api_key="key", http_client=AsyncMock(spec=httpx.AsyncClient))
        doc = {
            "Global Quote": {
                "01. symbol": "INFY.BSE",
                "02. open": "1852.00",
                "03. high": "1855.00",
                "04. low": "1847.00",
                "05. price": "1850.75",
                "06. volume": "98765",
                "08. previous close": "1853.90",
                "09. change": "-3.15",
                "10. change percent": "-0.1699%",
            }
        }

        with patch.object(strategy, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = doc
            quote = await strategy.fetch_quote("INFY")

        params = mock_request.call_args.kwargs["params"]
        assert params["symbol"] == "INFY.BSE"
        assert params["function"] == "GLOBAL_QUOTE"
        assert quote.price == 1850.75
        assert quote.change == -3.15
        assert quote.change_percent == -0.17
        assert quote.volume == 98765

    @pytest.mark.asyncio
    async def test_throttle_note(self) -> None:
        """Test vendor throttle notes are upstream failures."""
        strategy = TertiaryVendorStrategy(api_key="key", http_client=AsyncMock(spec=httpx.AsyncClient))

        with patch.object(strategy, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"Note": "Thank you for using our API"}
            with pytest.raises(UpstreamError, match="throttled"):
                await strategy.fetch_quote("INFY")

    @pytest.mark.asyncio
    async def test_fetch_historical(self) -> None:
        """Test the daily series is ordered oldest first and trimmed to range."""
        strategy = TertiaryVendorStrategy(api_key="key", http_client=AsyncMock(spec=httpx.AsyncClient))
        series = {
            f"2024-01-{day:02d}": {
                "1. open": "100",
                "2. high": "101",
                "3. low": "99",
                "4. close": str(100 + day),
                "5. volume": "1000",
            }
            for day in range(1, 11)
        }

        with patch.object(strategy, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"Time Series (Daily)": series}
            result = await strategy.fetch_historical("INFY", "1d", "5d")

        assert len(result.candles) == 5
        assert result.candles[0].timestamp == datetime(2024, 1, 6)
        assert result.candles[-1].close == 110.0

    @pytest.mark.asyncio
    async def test_intraday_unsupported(self) -> None:
        """Test only daily candles are offered."""
        strategy = TertiaryVendorStrategy(api_key="key")
        with pytest.raises(UnsupportedCapability):
            await strategy.fetch_historical("INFY", "5m", "1d")


class TestStaticFallbackStrategy:
    """Tests for StaticFallbackStrategy."""

    @pytest.mark.asyncio
    async def test_known_symbol(self) -> None:
        """Test known symbols use the last close table."""
        quote = await StaticFallbackStrategy().fetch_quote("RELIANCE")
        assert quote.price == LAST_KNOWN_CLOSES["RELIANCE"][0]
        assert quote.previous_close == 1486.90
        assert quote.change == 17.3
        assert quote.source_name == "static_fallback"

    @pytest.mark.asyncio
    async def test_unknown_symbol(self) -> None:
        """Test unknown symbols get a generic close."""
        quote = await StaticFallbackStrategy().fetch_quote("NEWCO")
        assert quote.price == 1000.0
        assert quote.change == 5.0
        assert quote.company_name == "NEWCO Limited"

    @pytest.mark.asyncio
    async def test_historical_is_deterministic(self) -> None:
        """Test the same symbol and range give the same closes."""
        strategy = StaticFallbackStrategy()
        first = await strategy.fetch_historical("TCS", "1d", "1mo")
        second = await strategy.fetch_historical("TCS", "1d", "1mo")
        assert [c.close for c in first.candles] == [c.close for c in second.candles]

    @pytest.mark.asyncio
    async def test_historical_shape(self) -> None:
        """Test the series length follows the range and ends at the last close."""
        series = await StaticFallbackStrategy().fetch_historical("TCS", "1d", "3mo")
        assert len(series.candles) == 66
        assert series.candles[-1].close == LAST_KNOWN_CLOSES["TCS"][0]
        assert series.candles[0].timestamp < series.candles[-1].timestamp
        for candle in series.candles:
            assert candle.low <= min(candle.open, candle.close)
            assert candle.high >= max(candle.open, candle.close)

    def test_range_to_bars(self) -> None:
        """Test lookback ranges map to bar counts."""
        assert range_to_bars("5d") == 5
        assert range_to_bars("1mo") == 22
        assert range_to_bars("1y") == 252
        assert range_to_bars("unknown") == 22
