"""Margin math — broker rate tiers, interest accrual, margin-call thresholds.

Pure functions shared by the daily update calculator, the risk alert
generator and the trade-sizing calculator.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# (upper bound of borrowed amount, annual rate %), checked in order
MARGIN_RATE_TIERS: list[tuple[float, float]] = [
    (50_000, 5.75),
    (100_000, 5.55),
    (1_000_000, 5.25),
    (10_000_000, 5.0),
    (50_000_000, 4.95),
]
TOP_TIER_RATE = 4.7

GOLD_FREE_MARGIN = 1000.0
MAINTENANCE_PCT = 0.25


def robinhood_margin_rate(margin_amount: float) -> float:
    """Annual margin rate (%) for a borrowed amount."""
    for upper, rate in MARGIN_RATE_TIERS:
        if margin_amount <= upper:
            return rate
    return TOP_TIER_RATE


def chargeable_margin(margin_used: float, is_gold_subscriber: bool,
                      free_allowance: float = GOLD_FREE_MARGIN) -> float:
    if is_gold_subscriber:
        return max(0.0, margin_used - free_allowance)
    return margin_used


def daily_interest_rate(annual_rate_pct: float) -> float:
    return annual_rate_pct / 365 / 100


def margin_interest(margin_used: float, days: float, is_gold_subscriber: bool = False,
                    free_allowance: float = GOLD_FREE_MARGIN) -> float:
    """Simple interest accrued on borrowed funds over a number of days."""
    rate = robinhood_margin_rate(margin_used)
    chargeable = chargeable_margin(margin_used, is_gold_subscriber, free_allowance)
    return chargeable * daily_interest_rate(rate) * days


def margin_call_price(margin_used: float, shares: float) -> float:
    """Price at which equity falls to 25% of position value.

    equity < 0.25 * value  <=>  price <= margin_used / (0.75 * shares)
    """
    if shares <= 0:
        return 0.0
    return (margin_used * 4 / 3) / shares


def is_margin_call(stock_price: float, shares: float, margin_used: float,
                   maintenance: float = MAINTENANCE_PCT) -> bool:
    portfolio_value = stock_price * shares
    equity = portfolio_value - margin_used
    return equity < portfolio_value * maintenance


def max_loss(entry_price: float, shares: float, stop_loss: float | None = None) -> float:
    if stop_loss:
        return max(0.0, (entry_price - stop_loss) * shares)
    return entry_price * shares


def roi_pct(net_profit: float, own_cash: float) -> float:
    return net_profit / own_cash * 100 if own_cash > 0 else 0.0


def format_roi(roi: float) -> str:
    """Render ROI for display; non-finite or absurd values become infinity symbols."""
    if math.isnan(roi) or math.isinf(roi):
        return "-∞" if roi < 0 else "∞"
    if abs(roi) > 9999:
        return "∞" if roi > 0 else "-∞"
    return f"{roi:.2f}"


# --- Trade sizing ---

@dataclass(frozen=True)
class Scenario:
    gross: float
    net: float
    roi: float


@dataclass(frozen=True)
class TradePlan:
    shares: int
    actual_investment: float
    actual_margin_used: float
    actual_own_cash: float
    margin_rate: float
    chargeable_margin: float
    total_interest: float
    exit_scenario: Scenario
    stop_loss_scenario: Scenario
    margin_call_price: float
    is_margin_call_risk: bool   # margin call would hit before the stop
    gold_savings: float


PRESETS: dict[str, dict[str, float]] = {
    "conservative": {"margin_ratio": 25, "exit_mult": 1.05, "stop_mult": 0.98, "duration": 14},
    "moderate": {"margin_ratio": 50, "exit_mult": 1.10, "stop_mult": 0.95, "duration": 30},
    "aggressive": {"margin_ratio": 100, "exit_mult": 1.20, "stop_mult": 0.90, "duration": 60},
}


def calculate_trade(
    investment_amount: float,
    margin_ratio: float,
    entry_price: float,
    exit_price: float,
    stop_loss: float,
    trade_duration: int,
    is_gold_subscriber: bool = False,
    free_allowance: float = GOLD_FREE_MARGIN,
) -> TradePlan:
    """Size a margin trade and project interest, exit and stop outcomes.

    margin_ratio is the percent (0-100) of the investment that is borrowed.
    Shares are whole; any remainder shrinks the borrowed amount first.
    """
    margin_used = investment_amount * margin_ratio / 100
    own_cash = investment_amount - margin_used
    shares = math.floor(investment_amount / entry_price) if entry_price > 0 else 0
    actual_investment = shares * entry_price
    actual_margin = max(0.0, min(margin_used, actual_investment - own_cash))
    actual_own_cash = actual_investment - actual_margin

    rate = robinhood_margin_rate(actual_margin)
    chargeable = chargeable_margin(actual_margin, is_gold_subscriber, free_allowance)
    daily_rate = daily_interest_rate(rate)
    total_interest = chargeable * daily_rate * trade_duration

    exit_gross = (exit_price - entry_price) * shares
    stop_gross = (stop_loss - entry_price) * shares

    call_price = margin_call_price(actual_margin, shares)
    gold_savings = (
        min(free_allowance, actual_margin) * daily_rate * trade_duration
        if is_gold_subscriber else 0.0
    )

    return TradePlan(
        shares=shares,
        actual_investment=actual_investment,
        actual_margin_used=actual_margin,
        actual_own_cash=actual_own_cash,
        margin_rate=rate,
        chargeable_margin=chargeable,
        total_interest=total_interest,
        exit_scenario=Scenario(
            gross=exit_gross,
            net=exit_gross - total_interest,
            roi=roi_pct(exit_gross - total_interest, actual_own_cash),
        ),
        stop_loss_scenario=Scenario(
            gross=stop_gross,
            net=stop_gross - total_interest,
            roi=roi_pct(stop_gross - total_interest, actual_own_cash),
        ),
        margin_call_price=call_price,
        is_margin_call_risk=call_price > stop_loss,
        gold_savings=gold_savings,
    )


def apply_preset(preset: str, entry_price: float) -> dict[str, float]:
    """Return margin ratio, exit, stop and duration for a named preset."""
    p = PRESETS[preset]
    return {
        "margin_ratio": p["margin_ratio"],
        "exit_price": entry_price * p["exit_mult"],
        "stop_loss": entry_price * p["stop_mult"],
        "trade_duration": int(p["duration"]),
    }


def generate_scenarios(
    entry_price: float,
    shares: float,
    margin_used: float,
    own_cash: float,
    margin_interest_usd: float,
    steps: int = 20,
    low_mult: float = 0.7,
    high_mult: float = 1.4,
    maintenance: float = MAINTENANCE_PCT,
) -> list[dict]:
    """P/L grid from -30% to +40% of entry, with margin-call flags."""
    lo, hi = entry_price * low_mult, entry_price * high_mult
    scenarios = []
    for i in range(steps + 1):
        price = lo + (hi - lo) * (i / steps)
        net = (price - entry_price) * shares - margin_interest_usd
        scenarios.append({
            "price": price,
            "profit": net,
            "roi": roi_pct(net, own_cash),
            "margin_call": is_margin_call(price, shares, margin_used, maintenance),
        })
    return scenarios
