"""Tests for the service's scheduled jobs with stubbed components."""

from unittest.mock import AsyncMock, MagicMock

import pandas as pd
import pytest


def _app():
    from marginwatch.main import MarginWatch
    from marginwatch.shell.config import Config
    app = MarginWatch(Config())
    app._positions = MagicMock()
    app._engine = MagicMock()
    app._engine.evaluate_alerts = AsyncMock(return_value=[])
    app._market = MagicMock()
    app._refresher = MagicMock()
    app._unified = MagicMock()
    app._ws = MagicMock()
    app._ws.broadcast = AsyncMock()
    return app


@pytest.mark.asyncio
async def test_refresh_job_feeds_engine():
    from marginwatch.shell.contract import StockQuote
    app = _app()
    quote = StockQuote(symbol="AAPL", price=101.0)
    app._refresher.refresh_all = AsyncMock(return_value={"AAPL": quote})

    await app._refresh_prices()

    app._engine.update_market_data.assert_called_once_with("AAPL", quote)
    app._ws.broadcast.assert_awaited_once_with({"event": "positions.refreshed", "symbols": ["AAPL"]})


@pytest.mark.asyncio
async def test_evaluation_job_fetches_only_needed_inputs():
    from marginwatch.shell.contract import MarketConditions, PositionStatus
    app = _app()
    active = MagicMock(symbol="AAPL", is_active=True, status=PositionStatus.ACTIVE)
    closed = MagicMock(symbol="MSFT", is_active=False, status=PositionStatus.COMPLETED)
    app._positions.list_all = AsyncMock(return_value=[active, closed])
    app._market.get_history = AsyncMock(return_value=pd.DataFrame({"close": [1.0]}))
    app._market.get_market_conditions = AsyncMock()

    app._engine.required_inputs.return_value = (True, False)
    await app._evaluate_alerts()
    app._market.get_history.assert_awaited_once_with("AAPL", "6m")
    app._market.get_market_conditions.assert_not_awaited()
    # Closed positions are left out of rule evaluation
    app._engine.evaluate_alerts.assert_awaited_once_with([active])

    # History is fetched once per day per symbol
    await app._evaluate_alerts()
    assert app._market.get_history.await_count == 1

    conditions = MarketConditions(vix=20, sp500_price=5000, sp500_change=0.1,
                                  volatility_regime="medium", market_trend="bullish")
    app._market.get_market_conditions = AsyncMock(return_value=conditions)
    app._engine.required_inputs.return_value = (False, True)
    await app._evaluate_alerts()
    app._engine.update_market_conditions.assert_called_once_with(conditions)


@pytest.mark.asyncio
async def test_evaluation_job_broadcasts_new_alerts():
    app = _app()
    app._positions.list_all = AsyncMock(return_value=[])
    app._engine.required_inputs.return_value = (False, False)
    alert = MagicMock()
    alert.to_dict.return_value = {"id": "alert_1"}
    app._engine.evaluate_alerts = AsyncMock(return_value=[alert])

    await app._evaluate_alerts()
    app._ws.broadcast.assert_awaited_once_with({"event": "alert.triggered", "alert": {"id": "alert_1"}})


@pytest.mark.asyncio
async def test_job_failures_are_contained():
    from marginwatch.shell.market import MarketDataError
    app = _app()
    app._refresher.refresh_all = AsyncMock(side_effect=RuntimeError("db gone"))
    await app._refresh_prices()
    app._ws.broadcast.assert_not_awaited()

    active = MagicMock(symbol="AAPL", is_active=True)
    app._positions.list_all = AsyncMock(return_value=[active])
    app._engine.required_inputs.return_value = (True, True)
    app._market.get_history = AsyncMock(side_effect=MarketDataError("timeout"))
    app._market.get_market_conditions = AsyncMock(side_effect=MarketDataError("timeout"))
    await app._evaluate_alerts()
    # Rules still run on whatever data is available
    app._engine.evaluate_alerts.assert_awaited_once()
    app._engine.update_price_history.assert_not_called()


@pytest.mark.asyncio
async def test_unified_view_job():
    app = _app()
    app._unified.statistics = AsyncMock(return_value={"total": 0})
    app._unified.recent_alerts = AsyncMock(return_value=[])
    await app._publish_unified_view()
    app._ws.broadcast.assert_awaited_once_with({"event": "alerts.summary", "statistics": {"total": 0}, "recent": []})

    app._unified.clear_old_alerts = AsyncMock(return_value=3)
    await app._housekeeping()
    app._unified.clear_old_alerts.assert_awaited_once_with(7)
