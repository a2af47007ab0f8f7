"""Market data client — quotes, symbol search and daily history.

Talks to Yahoo Finance's public chart and search endpoints. Part of the shell:
everything above this module works with StockQuote records and DataFrames.
"""

from __future__ import annotations

from typing import Any

import httpx
import pandas as pd
import structlog

from marginwatch.alerts.indicators import classify_regime
from marginwatch.shell.config import MarketDataConfig
from marginwatch.shell.contract import MarketConditions, SearchResult, StockQuote

log = structlog.get_logger()

# Display period -> chart API range
PERIOD_MAP = {
    "1m": "1mo",
    "3m": "3mo",
    "6m": "6mo",
    "1y": "1y",
}

SEARCHABLE_TYPES = {"EQUITY", "ETF", "MUTUALFUND", "FUND", "INDEX", "TRUST"}
MAX_SEARCH_RESULTS = 10

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


class MarketDataError(Exception):
    """Quote or history could not be fetched."""


class QuoteNotFound(MarketDataError):
    """The symbol is unknown to the data provider."""


class MarketData:
    """Yahoo Finance client."""

    def __init__(self, config: MarketDataConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            timeout=config.timeout_seconds,
            headers={"User-Agent": config.user_agent},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _public(self, url: str, params: dict | None = None) -> dict:
        """GET a JSON object. Non-object bodies raise ValueError like unparseable ones."""
        resp = await self._client.get(url, params=params)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data

    async def _chart(self, symbol: str, range_: str) -> dict:
        url = f"{self._config.chart_url}/{symbol}"
        try:
            data = await self._public(url, {"range": range_, "interval": "1d"})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise QuoteNotFound(symbol) from e
            raise MarketDataError(f"Chart request for {symbol} failed: {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise MarketDataError(f"Chart request for {symbol} failed: {e}") from e

        chart = data.get("chart") or {}
        if not isinstance(chart, dict):
            raise MarketDataError(f"Malformed chart response for {symbol}")
        if chart.get("error"):
            raise QuoteNotFound(symbol)
        results = chart.get("result") or []
        if not results:
            raise QuoteNotFound(symbol)
        if not isinstance(results, list) or not isinstance(results[0], dict):
            raise MarketDataError(f"Malformed chart response for {symbol}")
        return results[0]

    @staticmethod
    def _frame(result: dict) -> pd.DataFrame:
        try:
            return MarketData._build_frame(result)
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
            raise MarketDataError(f"Malformed price history: {e}") from e

    @staticmethod
    def _build_frame(result: dict) -> pd.DataFrame:
        timestamps = result.get("timestamp") or []
        quotes = (result.get("indicators") or {}).get("quote") or [{}]
        if not timestamps:
            return pd.DataFrame(columns=OHLCV_COLUMNS)

        df = pd.DataFrame({col: quotes[0].get(col) or [None] * len(timestamps) for col in OHLCV_COLUMNS})
        for col in OHLCV_COLUMNS:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        df["time"] = pd.to_datetime(timestamps, unit="s")
        df.set_index("time", inplace=True)
        # Provider pads trading halts with nulls
        return df.dropna(subset=["close"])

    async def get_quote(self, symbol: str) -> StockQuote:
        """Latest quote; average volume is derived from three months of daily bars."""
        symbol = symbol.upper()
        result = await self._chart(symbol, "3mo")
        meta = result.get("meta") or {}
        if not isinstance(meta, dict):
            raise MarketDataError(f"Malformed quote for {symbol}")
        price = meta.get("regularMarketPrice")
        if price is None:
            raise QuoteNotFound(symbol)
        if not isinstance(price, (int, float)):
            raise MarketDataError(f"Malformed quote for {symbol}: price {price!r}")

        df = self._frame(result)
        previous = meta.get("chartPreviousClose") or meta.get("previousClose")
        if len(df) >= 2:
            previous = float(df["close"].iloc[-2])
        change = price - previous if previous else 0.0
        change_pct = change / previous * 100 if previous else 0.0

        volume = meta.get("regularMarketVolume")
        if volume is None and not df.empty:
            volume = df["volume"].iloc[-1]
        avg_volume = float(df["volume"].mean()) if not df.empty else 0.0

        return StockQuote(
            symbol=meta.get("symbol", symbol),
            price=float(price),
            change=float(change),
            change_percent=float(change_pct),
            volume=float(volume or 0),
            market_cap=float(meta.get("marketCap") or 0),
            fifty_two_week_low=float(meta.get("fiftyTwoWeekLow") or 0),
            fifty_two_week_high=float(meta.get("fiftyTwoWeekHigh") or 0),
            average_volume=0.0 if pd.isna(avg_volume) else avg_volume,
            short_name=meta.get("shortName") or symbol,
            long_name=meta.get("longName"),
            trailing_pe=meta.get("trailingPE"),
            forward_pe=meta.get("forwardPE"),
            dividend_yield=meta.get("dividendYield"),
            beta=meta.get("beta"),
        )

    async def get_quotes(self, symbols: list[str]) -> dict[str, StockQuote]:
        """Quotes for many symbols; failures are logged and left out."""
        quotes: dict[str, StockQuote] = {}
        for symbol in dict.fromkeys(s.upper() for s in symbols):
            try:
                quotes[symbol] = await self.get_quote(symbol)
            except MarketDataError as e:
                log.warning("market.quote_failed", symbol=symbol, error=str(e))
        return quotes

    async def search(self, query: str) -> list[SearchResult]:
        """Symbol search. Any failure yields an empty list."""
        if not query.strip():
            return []
        params: dict[str, Any] = {"q": query, "quotesCount": MAX_SEARCH_RESULTS * 2, "newsCount": 0}
        try:
            data = await self._public(self._config.search_url, params)
        except (httpx.HTTPError, ValueError) as e:
            log.warning("market.search_failed", query=query, error=str(e))
            return []

        results = []
        quotes = data.get("quotes") or []
        if not isinstance(quotes, list):
            log.warning("market.search_failed", query=query, error="malformed quotes list")
            return []
        for item in quotes:
            if not isinstance(item, dict):
                continue
            kind = str(item.get("quoteType", "")).upper()
            if kind not in SEARCHABLE_TYPES:
                continue
            if not item.get("symbol") or not item.get("exchange"):
                continue
            results.append(SearchResult(
                symbol=item["symbol"],
                name=item.get("shortname") or item.get("longname") or item["symbol"],
                type=kind,
            ))
            if len(results) >= MAX_SEARCH_RESULTS:
                break
        return results

    async def get_history(self, symbol: str, period: str = "1y") -> pd.DataFrame:
        """Daily OHLCV bars indexed by timestamp. Unknown periods fall back to a year."""
        result = await self._chart(symbol.upper(), PERIOD_MAP.get(period, "1y"))
        return self._frame(result)

    async def get_market_conditions(self) -> MarketConditions:
        """Volatility regime from the VIX and trend from the index's daily history."""
        vix = await self.get_quote(self._config.vix_symbol)
        index_result = await self._chart(self._config.index_symbol, "6mo")
        index_meta = index_result.get("meta") or {}
        index_df = self._frame(index_result)

        if vix.price < 15:
            volatility = "low"
        elif vix.price < 25:
            volatility = "medium"
        else:
            volatility = "high"

        regime = classify_regime(index_df) if len(index_df) >= 30 else "ranging"
        trend = {"trending_up": "bullish", "trending_down": "bearish"}.get(regime, "sideways")

        sp_price = float(index_meta.get("regularMarketPrice") or (index_df["close"].iloc[-1] if not index_df.empty else 0))
        sp_change = 0.0
        if len(index_df) >= 2:
            prev = float(index_df["close"].iloc[-2])
            sp_change = (sp_price - prev) / prev * 100 if prev else 0.0

        conditions = MarketConditions(
            vix=vix.price,
            sp500_price=sp_price,
            sp500_change=sp_change,
            volatility_regime=volatility,
            market_trend=trend,
        )
        log.info("market.conditions", vix=round(vix.price, 2), volatility=volatility, trend=trend)
        return conditions
