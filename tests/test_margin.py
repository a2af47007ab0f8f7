"""Tests for margin math, trade sizing, daily updates and position risk alerts."""

from datetime import datetime, timedelta, timezone

import pytest

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _position(**overrides):
    from marginwatch.shell.contract import TrackedPosition
    fields = dict(
        id="1767000000000",
        symbol="AAPL",
        stock_name="Apple Inc.",
        entry_price=100.0,
        exit_price=120.0,
        stop_loss=90.0,
        shares=10,
        investment_amount=1000.0,
        margin_used=500.0,
        own_cash=500.0,
        margin_ratio=50,
        trade_duration=30,
        is_gold_subscriber=False,
        entry_date=(NOW - timedelta(days=30)).isoformat(),
        expiration_date=(NOW + timedelta(days=1)).isoformat(),
    )
    fields.update(overrides)
    return TrackedPosition(**fields)


# --- Rates and interest ---

def test_margin_rate_tiers():
    from marginwatch.tracking.margin import robinhood_margin_rate
    assert robinhood_margin_rate(0) == 5.75
    assert robinhood_margin_rate(50_000) == 5.75
    assert robinhood_margin_rate(50_000.01) == 5.55
    assert robinhood_margin_rate(100_000) == 5.55
    assert robinhood_margin_rate(1_000_000) == 5.25
    assert robinhood_margin_rate(10_000_000) == 5.0
    assert robinhood_margin_rate(50_000_000) == 4.95
    assert robinhood_margin_rate(50_000_001) == 4.7


def test_gold_allowance_reduces_chargeable_margin():
    from marginwatch.tracking.margin import chargeable_margin, margin_interest
    assert chargeable_margin(500, is_gold_subscriber=True) == 0.0
    assert chargeable_margin(1500, is_gold_subscriber=True) == 500.0
    assert chargeable_margin(1500, is_gold_subscriber=False) == 1500.0
    assert margin_interest(800, 30, is_gold_subscriber=True) == 0.0
    assert margin_interest(500, 30) == pytest.approx(500 * 0.0575 / 365 * 30)


def test_margin_call_price_and_check():
    from marginwatch.tracking.margin import is_margin_call, margin_call_price
    assert margin_call_price(500, 10) == pytest.approx(66.6667, abs=1e-3)
    assert margin_call_price(500, 0) == 0.0
    assert is_margin_call(60, 10, 500) is True
    assert is_margin_call(100, 10, 500) is False


def test_max_loss():
    from marginwatch.tracking.margin import max_loss
    assert max_loss(100, 10, 90) == 100
    assert max_loss(100, 10) == 1000
    assert max_loss(100, 10, 110) == 0


def test_format_roi():
    from marginwatch.tracking.margin import format_roi
    assert format_roi(19.527) == "19.53"
    assert format_roi(float("inf")) == "∞"
    assert format_roi(float("-inf")) == "-∞"
    assert format_roi(float("nan")) == "∞"
    assert format_roi(12000) == "∞"
    assert format_roi(-12000) == "-∞"


# --- Trade sizing ---

def test_calculate_trade_whole_shares():
    from marginwatch.tracking.margin import calculate_trade
    plan = calculate_trade(1000, 50, entry_price=33, exit_price=36, stop_loss=30, trade_duration=30)
    assert plan.shares == 30
    assert plan.actual_investment == 990
    # Remainder comes out of the borrowed portion first
    assert plan.actual_margin_used == 490
    assert plan.actual_own_cash == 500
    assert plan.margin_rate == 5.75
    assert plan.total_interest == pytest.approx(490 * 0.0575 / 365 * 30)
    assert plan.exit_scenario.gross == pytest.approx(90)
    assert plan.stop_loss_scenario.gross == pytest.approx(-90)
    assert plan.exit_scenario.net == pytest.approx(90 - plan.total_interest)
    assert plan.gold_savings == 0.0


def test_calculate_trade_margin_call_risk():
    from marginwatch.tracking.margin import calculate_trade
    # Fully borrowed: the call price sits above entry, so above any stop
    plan = calculate_trade(1000, 100, entry_price=100, exit_price=120, stop_loss=90, trade_duration=30)
    assert plan.actual_own_cash == 0
    assert plan.margin_call_price == pytest.approx(133.33, abs=0.01)
    assert plan.is_margin_call_risk is True
    assert plan.exit_scenario.roi == 0.0

    safe = calculate_trade(1000, 25, entry_price=100, exit_price=105, stop_loss=98, trade_duration=14)
    assert safe.is_margin_call_risk is False


def test_calculate_trade_gold_savings():
    from marginwatch.tracking.margin import calculate_trade
    plan = calculate_trade(4000, 50, entry_price=100, exit_price=110, stop_loss=95, trade_duration=30,
                           is_gold_subscriber=True)
    assert plan.chargeable_margin == 1000
    assert plan.gold_savings == pytest.approx(1000 * 0.0575 / 365 * 30)

    # A smaller allowance leaves more margin chargeable
    smaller = calculate_trade(4000, 50, entry_price=100, exit_price=110, stop_loss=95, trade_duration=30,
                              is_gold_subscriber=True, free_allowance=400)
    assert smaller.chargeable_margin == 1600
    assert smaller.gold_savings == pytest.approx(400 * 0.0575 / 365 * 30)


def test_presets():
    from marginwatch.tracking.margin import apply_preset
    p = apply_preset("moderate", 100)
    assert p["margin_ratio"] == 50
    assert p["exit_price"] == pytest.approx(110)
    assert p["stop_loss"] == pytest.approx(95)
    assert p["trade_duration"] == 30

    aggressive = apply_preset("aggressive", 50)
    assert aggressive["margin_ratio"] == 100
    assert aggressive["stop_loss"] == pytest.approx(45)
    with pytest.raises(KeyError):
        apply_preset("reckless", 100)


def test_generate_scenarios():
    from marginwatch.tracking.margin import generate_scenarios
    rows = generate_scenarios(100, 10, 500, 500, 2.36)
    assert len(rows) == 21
    assert rows[0]["price"] == pytest.approx(70)
    assert rows[-1]["price"] == pytest.approx(140)
    assert rows[0]["margin_call"] is False
    assert rows[-1]["profit"] == pytest.approx(400 - 2.36)
    low = generate_scenarios(100, 10, 500, 500, 0, low_mult=0.5, high_mult=1.0, steps=5)
    assert low[0]["price"] == pytest.approx(50)
    assert low[0]["margin_call"] is True

    # Stricter maintenance flags more of the grid
    strict = generate_scenarios(100, 10, 500, 500, 0, maintenance=0.5)
    assert [r["margin_call"] for r in strict].count(True) == 9
    assert not any(r["margin_call"] for r in rows)


# --- Daily update ---

def test_daily_update_example():
    from marginwatch.shell.contract import PositionStatus
    from marginwatch.tracking.daily import calculate_daily_update

    updated = calculate_daily_update(_position(), 110.0, now=NOW)
    assert updated.days_elapsed == 30
    assert updated.total_interest_paid == pytest.approx(2.36, abs=0.01)
    assert updated.current_profit == pytest.approx(97.64, abs=0.01)
    assert updated.current_roi == pytest.approx(19.53, abs=0.01)
    assert updated.status == PositionStatus.ACTIVE
    assert len(updated.daily_updates) == 1
    today = updated.daily_updates[0]
    assert today.date == "2026-03-02"
    assert today.profit == pytest.approx(100)
    assert today.loss == 0
    assert today.margin_call_risk is False


def test_daily_update_does_not_mutate_input():
    from marginwatch.tracking.daily import calculate_daily_update
    position = _position()
    calculate_daily_update(position, 110.0, now=NOW)
    assert position.daily_updates == []
    assert position.current_price is None


def test_daily_update_margin_call_and_stop():
    from marginwatch.shell.contract import PositionStatus, RiskAlertType
    from marginwatch.tracking.daily import calculate_daily_update

    updated = calculate_daily_update(_position(), 60.0, now=NOW)
    assert updated.daily_updates[-1].margin_call_risk is True
    assert updated.daily_updates[-1].loss == pytest.approx(400)
    assert updated.status == PositionStatus.STOPPED
    types = {a.type for a in updated.risk_alerts}
    assert RiskAlertType.MARGIN_RISK in types
    assert RiskAlertType.HIGH_VOLATILITY in types


def test_daily_update_same_day_overwrites():
    from marginwatch.tracking.daily import calculate_daily_update
    first = calculate_daily_update(_position(), 105.0, now=NOW)
    second = calculate_daily_update(first, 107.0, now=NOW + timedelta(hours=2))
    assert len(second.daily_updates) == 1
    assert second.daily_updates[0].price == 107.0

    third = calculate_daily_update(second, 108.0, now=NOW + timedelta(days=1))
    assert len(third.daily_updates) == 2


def test_daily_update_status_transitions():
    from marginwatch.shell.contract import PositionStatus
    from marginwatch.tracking.daily import calculate_daily_update

    assert calculate_daily_update(_position(), 120.0, now=NOW).status == PositionStatus.COMPLETED
    assert calculate_daily_update(_position(), 90.0, now=NOW).status == PositionStatus.STOPPED

    expired = _position(expiration_date=(NOW - timedelta(minutes=1)).isoformat())
    # Expiry wins over the target check
    assert calculate_daily_update(expired, 125.0, now=NOW).status == PositionStatus.EXPIRED


def test_daily_update_status_never_returns_to_active():
    from marginwatch.shell.contract import PositionStatus
    from marginwatch.tracking.daily import calculate_daily_update

    for status in (PositionStatus.COMPLETED, PositionStatus.STOPPED, PositionStatus.EXPIRED):
        updated = calculate_daily_update(_position(status=status), 100.0, now=NOW)
        assert updated.status == status
        # Still refreshed
        assert updated.current_price == 100.0


def test_daily_update_zero_own_cash():
    from marginwatch.tracking.daily import calculate_daily_update
    updated = calculate_daily_update(_position(own_cash=0, margin_used=1000), 110.0, now=NOW)
    assert updated.current_roi == 0.0


def test_daily_update_gold_subscriber_pays_no_interest_under_allowance():
    from marginwatch.tracking.daily import calculate_daily_update
    updated = calculate_daily_update(_position(is_gold_subscriber=True), 110.0, now=NOW)
    assert updated.total_interest_paid == 0.0
    assert updated.current_profit == pytest.approx(100)

    custom = calculate_daily_update(_position(is_gold_subscriber=True), 110.0, now=NOW, free_allowance=0)
    assert custom.total_interest_paid == pytest.approx(2.36, abs=0.01)


# --- Risk alerts ---

def test_risk_sudden_loss_severity():
    from marginwatch.shell.contract import DailyUpdate, RiskAlertType, Severity
    from marginwatch.tracking.risk_alerts import check_for_risk_alerts

    def update(day, roi):
        return DailyUpdate(date=day, price=100, profit=0, loss=0, total_interest=0, roi=roi,
                           margin_call_risk=False)

    position = _position(current_price=101.0, current_roi=7.0,
                         daily_updates=[update("2026-03-01", 10.0), update("2026-03-02", 7.0)])
    alerts = check_for_risk_alerts(position, now=NOW)
    assert [a.type for a in alerts] == [RiskAlertType.SUDDEN_LOSS]
    # -30% change in ROI
    assert alerts[0].severity == Severity.HIGH
    assert alerts[0].id.startswith(f"{position.id}-sudden-loss-")
    assert alerts[0].acknowledged is False

    mild = _position(current_price=101.0, current_roi=8.8,
                     daily_updates=[update("2026-03-01", 10.0), update("2026-03-02", 8.8)])
    assert check_for_risk_alerts(mild, now=NOW)[0].severity == Severity.LOW


def test_risk_sudden_loss_skips_zero_baseline():
    from marginwatch.shell.contract import DailyUpdate
    from marginwatch.tracking.risk_alerts import check_for_risk_alerts

    updates = [
        DailyUpdate(date="2026-03-01", price=100, profit=0, loss=0, total_interest=0, roi=0.0, margin_call_risk=False),
        DailyUpdate(date="2026-03-02", price=95, profit=-50, loss=50, total_interest=0, roi=-10.0, margin_call_risk=False),
    ]
    position = _position(current_price=95.0, current_roi=-10.0, daily_updates=updates)
    assert check_for_risk_alerts(position, now=NOW) == []


def test_risk_profit_decline():
    from marginwatch.shell.contract import DailyUpdate, RiskAlertType, Severity
    from marginwatch.tracking.risk_alerts import check_for_risk_alerts

    rois = [-6.0, -6.5, -7.0]
    updates = [
        DailyUpdate(date=f"2026-03-0{i + 1}", price=97, profit=-30, loss=30, total_interest=0,
                    roi=roi, margin_call_risk=False)
        for i, roi in enumerate(rois)
    ]
    position = _position(current_price=97.0, current_roi=-7.0, daily_updates=updates)
    alerts = check_for_risk_alerts(position, now=NOW)
    decline = [a for a in alerts if a.type == RiskAlertType.PROFIT_DECLINE]
    assert len(decline) == 1
    assert decline[0].severity == Severity.MEDIUM
    assert "-7.00%" in decline[0].message


def test_risk_no_alerts_for_healthy_position():
    from marginwatch.tracking.risk_alerts import check_for_risk_alerts
    position = _position(current_price=105.0, current_roi=9.5)
    assert check_for_risk_alerts(position, now=NOW) == []
