"""Tests for the market data client against canned provider responses."""

import httpx
import numpy as np
import pytest

BASE_TS = 1767225600  # 2026-01-01 00:00 UTC


def _chart(symbol, closes, price=None, volumes=None, **meta):
    n = len(closes)
    closes = list(closes)
    return {
        "chart": {
            "result": [{
                "meta": {
                    "symbol": symbol,
                    "regularMarketPrice": closes[-1] if price is None else price,
                    "shortName": f"{symbol} Corp",
                    **meta,
                },
                "timestamp": [BASE_TS + i * 86400 for i in range(n)],
                "indicators": {"quote": [{
                    "open": closes,
                    "high": [c * 1.01 if c is not None else None for c in closes],
                    "low": [c * 0.99 if c is not None else None for c in closes],
                    "close": closes,
                    "volume": volumes or [1_000_000] * n,
                }]},
            }],
            "error": None,
        }
    }


def _client(handler):
    from marginwatch.shell.config import MarketDataConfig
    from marginwatch.shell.market import MarketData
    return MarketData(MarketDataConfig(), transport=httpx.MockTransport(handler))


# --- Quotes ---

@pytest.mark.asyncio
async def test_get_quote():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["agent"] = request.headers.get("user-agent")
        return httpx.Response(200, json=_chart(
            "AAPL", [100.0, 102.0, 101.0, 104.0], volumes=[900_000, 1_100_000, 1_000_000, 2_000_000],
            regularMarketVolume=2_000_000, fiftyTwoWeekHigh=150.0, fiftyTwoWeekLow=80.0,
        ))

    market = _client(handler)
    try:
        quote = await market.get_quote("aapl")
    finally:
        await market.close()

    assert seen["path"].endswith("/AAPL")
    assert seen["params"]["range"] == "3mo"
    assert seen["params"]["interval"] == "1d"
    assert "marginwatch" in seen["agent"]
    assert quote.symbol == "AAPL"
    assert quote.price == 104.0
    assert quote.change == pytest.approx(3.0)
    assert quote.change_percent == pytest.approx(3 / 101 * 100)
    assert quote.volume == 2_000_000
    assert quote.average_volume == pytest.approx(1_250_000)
    assert quote.fifty_two_week_high == 150.0
    assert quote.short_name == "AAPL Corp"


@pytest.mark.asyncio
async def test_unknown_symbol_raises():
    from marginwatch.shell.market import MarketDataError, QuoteNotFound

    def handler(request):
        if request.url.path.endswith("/NOPE"):
            return httpx.Response(404, json={"chart": {"result": None, "error": {"code": "Not Found"}}})
        if request.url.path.endswith("/EMPTY"):
            return httpx.Response(200, json={"chart": {"result": [], "error": None}})
        return httpx.Response(503, text="unavailable")

    market = _client(handler)
    try:
        with pytest.raises(QuoteNotFound):
            await market.get_quote("NOPE")
        with pytest.raises(QuoteNotFound):
            await market.get_quote("EMPTY")
        with pytest.raises(MarketDataError):
            await market.get_quote("DOWN")

        quotes = await market.get_quotes(["AAPL", "NOPE"])
        assert quotes == {}
    finally:
        await market.close()


@pytest.mark.asyncio
async def test_get_quotes_skips_failures():
    def handler(request):
        if request.url.path.endswith("/BAD"):
            return httpx.Response(404)
        symbol = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json=_chart(symbol, [10.0, 11.0]))

    market = _client(handler)
    try:
        quotes = await market.get_quotes(["msft", "BAD", "MSFT", "nvda"])
    finally:
        await market.close()
    assert sorted(quotes) == ["MSFT", "NVDA"]
    assert quotes["NVDA"].price == 11.0


# --- History ---

@pytest.mark.asyncio
async def test_get_history_drops_null_bars():
    seen = {}

    def handler(request):
        seen["range"] = request.url.params["range"]
        return httpx.Response(200, json=_chart("AAPL", [100.0, None, 101.0, 102.0]))

    market = _client(handler)
    try:
        df = await market.get_history("AAPL", "6m")
    finally:
        await market.close()

    assert seen["range"] == "6mo"
    assert list(df.columns) == ["open", "high", "low", "close", "volume"]
    assert list(df["close"]) == [100.0, 101.0, 102.0]
    assert str(df.index[0].date()) == "2026-01-01"


# --- Search ---

@pytest.mark.asyncio
async def test_search_filters_results():
    def handler(request):
        assert request.url.params["q"] == "apple"
        return httpx.Response(200, json={"quotes": [
            {"symbol": "AAPL", "shortname": "Apple Inc.", "quoteType": "EQUITY", "exchange": "NMS"},
            {"symbol": "APLE", "longname": "Apple Hospitality REIT", "quoteType": "equity", "exchange": "NYQ"},
            {"symbol": "AAPL240621C", "quoteType": "OPTION", "exchange": "OPR"},
            {"symbol": "BTC-APPLE", "quoteType": "CRYPTOCURRENCY", "exchange": "CCC"},
            {"symbol": "NOEXCH", "quoteType": "ETF"},
        ]})

    market = _client(handler)
    try:
        results = await market.search("apple")
    finally:
        await market.close()

    assert [(r.symbol, r.name, r.type) for r in results] == [
        ("AAPL", "Apple Inc.", "EQUITY"),
        ("APLE", "Apple Hospitality REIT", "EQUITY"),
    ]


@pytest.mark.asyncio
async def test_search_caps_and_tolerates_failure():
    def many(request):
        return httpx.Response(200, json={"quotes": [
            {"symbol": f"S{i}", "shortname": f"Stock {i}", "quoteType": "EQUITY", "exchange": "NMS"}
            for i in range(25)
        ]})

    market = _client(many)
    try:
        assert len(await market.search("s")) == 10
        assert await market.search("   ") == []
    finally:
        await market.close()

    market = _client(lambda request: httpx.Response(500))
    try:
        assert await market.search("apple") == []
    finally:
        await market.close()


@pytest.mark.asyncio
async def test_malformed_bodies():
    from marginwatch.shell.market import MarketDataError

    bodies = {
        "LIST": [1, 2],
        "CHARTLIST": {"chart": [1]},
        "BADBARS": {"chart": {"result": [{
            "meta": {"regularMarketPrice": 10.0},
            "timestamp": [BASE_TS, BASE_TS + 86400],
            "indicators": {"quote": ["not-a-dict"]},
        }]}},
    }

    def handler(request):
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json=[])
        symbol = request.url.path.rsplit("/", 1)[-1]
        if symbol == "GOOD":
            return httpx.Response(200, json=_chart(symbol, [10.0, 11.0]))
        return httpx.Response(200, json=bodies[symbol])

    market = _client(handler)
    try:
        assert await market.search("apple") == []
        for symbol in ("LIST", "CHARTLIST", "BADBARS"):
            with pytest.raises(MarketDataError):
                await market.get_quote(symbol)
        # One broken symbol does not sink the rest
        quotes = await market.get_quotes(["LIST", "GOOD", "BADBARS"])
        assert list(quotes) == ["GOOD"]
    finally:
        await market.close()


# --- Market conditions ---

@pytest.mark.asyncio
async def test_market_conditions():
    index_closes = list(np.linspace(4000, 5000, 60))

    def handler(request):
        if request.url.path.endswith("/%5EVIX") or request.url.path.endswith("/^VIX"):
            return httpx.Response(200, json=_chart("^VIX", [18.0, 27.5]))
        return httpx.Response(200, json=_chart("^GSPC", index_closes))

    market = _client(handler)
    try:
        conditions = await market.get_market_conditions()
    finally:
        await market.close()

    assert conditions.vix == 27.5
    assert conditions.volatility_regime == "high"
    assert conditions.market_trend == "bullish"
    assert conditions.sp500_price == pytest.approx(5000)
    assert conditions.sp500_change == pytest.approx((5000 - index_closes[-2]) / index_closes[-2] * 100)
