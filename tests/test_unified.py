"""Tests for the unified alert view over rule-engine and position risk alerts."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

NOW = datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc)


async def _setup(db_path):
    """Store with one losing position carrying a risk alert, and one triggered rule alert."""
    from marginwatch.alerts.engine import AlertEngine
    from marginwatch.alerts.unified import UnifiedAlertService
    from marginwatch.shell.contract import (
        AlertCondition, AlertConfiguration, AlertType, RiskAlert, RiskAlertType, Severity,
    )
    from marginwatch.shell.database import Database
    from marginwatch.tracking.positions import PositionStore

    db = Database(db_path)
    await db.connect()
    positions = PositionStore(db)
    engine = AlertEngine(db, seed_defaults=False)
    await engine.initialize()

    p = await positions.create(
        symbol="AAPL", stock_name="Apple Inc.", entry_price=100.0, exit_price=120.0, stop_loss=60.0,
        shares=10, investment_amount=1000.0, margin_used=500.0, own_cash=500.0, margin_ratio=50,
        trade_duration=30, now=NOW - timedelta(days=3),
    )
    risk = RiskAlert(
        id=f"{p.id}-margin-risk-1", type=RiskAlertType.MARGIN_RISK, severity=Severity.HIGH,
        message="Margin call risk: Price 65.00 below threshold 66.67",
        timestamp=(NOW - timedelta(hours=2)).isoformat(),
    )
    await positions.update(p.id, {"current_price": 65.0, "risk_alerts": [risk]})

    await engine.add_alert(AlertConfiguration(
        id="cfg-loss", type=AlertType.PERCENTAGE_LOSS, name="Loss",
        conditions=[AlertCondition(field="percentage_loss", value=5)], severity=Severity.HIGH,
    ))
    position = await positions.get(p.id)
    triggered = await engine.evaluate_alerts([position], now=NOW - timedelta(hours=1))

    service = UnifiedAlertService(engine, positions, timezone="America/New_York")
    return db, positions, engine, service, p, risk, triggered[0]


@pytest.mark.asyncio
async def test_merged_feed_newest_first():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    try:
        db, positions, engine, service, p, risk, trading = await _setup(db_path)

        alerts = await service.get_all_alerts()
        assert [a.id for a in alerts] == [trading.id, risk.id]
        assert alerts[0].type == "trading" and alerts[0].source == "alert_engine"
        assert alerts[0].alert_id == "cfg-loss"

        risk_view = alerts[1]
        assert risk_view.type == "risk"
        assert risk_view.source == "tracking_service"
        assert risk_view.title == "Margin Call Risk"
        assert risk_view.entry_id == p.id
        assert risk_view.risk_type == "margin_risk"
        assert risk_view.symbol == "AAPL"
        assert risk_view.metadata["current_price"] == 65.0
        await db.close()
    finally:
        os.unlink(db_path)


@pytest.mark.asyncio
async def test_filter_and_counts():
    from marginwatch.shell.contract import AlertStatus, Severity
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    try:
        db, positions, engine, service, p, risk, trading = await _setup(db_path)

        assert [a.id for a in await service.filter_alerts(alert_type="risk")] == [risk.id]
        assert await service.filter_alerts(symbol="MSFT") == []
        assert len(await service.filter_alerts(status=AlertStatus.TRIGGERED, severity=Severity.HIGH)) == 2

        assert await service.active_count() == 2
        assert await service.counts_by_type() == {"trading": 1, "risk": 1, "total": 2}
        by_severity = await service.alerts_by_severity()
        assert len(by_severity["high"]) == 2
        assert by_severity["low"] == []
        assert [a.id for a in await service.recent_alerts(limit=1)] == [trading.id]
        await db.close()
    finally:
        os.unlink(db_path)


@pytest.mark.asyncio
async def test_acknowledge_routes_to_source():
    from marginwatch.shell.contract import AlertStatus
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    try:
        db, positions, engine, service, p, risk, trading = await _setup(db_path)

        assert await service.acknowledge(trading.id) is True
        assert engine.get_triggered_alerts()[0].status == AlertStatus.ACKNOWLEDGED

        assert await service.acknowledge(risk.id) is True
        assert (await positions.get(p.id)).risk_alerts[0].acknowledged is True

        assert await service.active_count() == 0
        assert await service.acknowledge("unknown") is False
        await db.close()
    finally:
        os.unlink(db_path)


@pytest.mark.asyncio
async def test_dismissing_a_risk_alert_acknowledges_it():
    from marginwatch.shell.contract import AlertStatus
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    try:
        db, positions, engine, service, p, risk, trading = await _setup(db_path)

        assert await service.dismiss(risk.id) is True
        view = (await service.filter_alerts(alert_type="risk"))[0]
        assert view.status == AlertStatus.ACKNOWLEDGED
        assert view.dismissed_at is None

        assert await service.dismiss(trading.id) is True
        assert engine.get_triggered_alerts()[0].status == AlertStatus.DISMISSED
        assert await service.dismiss("unknown") is False
        await db.close()
    finally:
        os.unlink(db_path)


@pytest.mark.asyncio
async def test_statistics():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    try:
        db, positions, engine, service, p, risk, trading = await _setup(db_path)
        await service.acknowledge(risk.id)

        stats = await service.statistics(now=NOW)
        assert stats["total"] == 1
        assert stats["trading"] == 1
        assert stats["risk"] == 0
        assert stats["by_severity"]["high"] == 1
        assert stats["today_count"] == 2
        assert stats["acknowledged_count"] == 1

        # Next day in New York, nothing is from today
        tomorrow = await service.statistics(now=NOW + timedelta(days=1))
        assert tomorrow["today_count"] == 0
        await db.close()
    finally:
        os.unlink(db_path)


@pytest.mark.asyncio
async def test_rule_statistics():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    try:
        db, positions, engine, service, p, risk, trading = await _setup(db_path)
        await engine.acknowledge_alert(trading.id, now=NOW - timedelta(minutes=30))

        stats = service.alert_statistics("7d", now=NOW)
        assert stats["time_range"] == "7d"
        assert stats["total_alerts"] == 1
        assert stats["active_alerts"] == 1
        assert stats["triggered_today"] == 1
        assert stats["accuracy_rate"] == 100.0
        assert stats["false_positive_rate"] == 0.0
        assert stats["avg_response_minutes"] == pytest.approx(30.0)
        assert stats["category_distribution"] == {"stop_loss": 1}
        assert stats["severity_distribution"] == {"high": 1}

        # Unknown ranges fall back to a week
        assert service.alert_statistics("5y", now=NOW)["time_range"] == "7d"
        # Outside the window nothing counts toward the rates
        later = service.alert_statistics("24h", now=NOW + timedelta(days=3))
        assert later["accuracy_rate"] == 0.0
        await db.close()
    finally:
        os.unlink(db_path)


@pytest.mark.asyncio
async def test_clear_old_alerts_leaves_risk_alerts():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    try:
        db, positions, engine, service, p, risk, trading = await _setup(db_path)
        await service.dismiss(trading.id)
        # Zero-day window drops every handled alert
        removed = await service.clear_old_alerts(0, now=NOW)
        assert removed == 1
        assert [a.id for a in await service.get_all_alerts()] == [risk.id]
        await db.close()
    finally:
        os.unlink(db_path)


def test_risk_alert_titles():
    from marginwatch.alerts.unified import risk_alert_title
    assert risk_alert_title("sudden_loss") == "Sudden Loss Alert"
    assert risk_alert_title("profit_decline") == "Profit Decline Alert"
    assert risk_alert_title("something_else") == "Risk Alert"
