"""Daily update calculator — derives a position's snapshot from a fresh quote."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime

from marginwatch.shell.contract import (
    DailyUpdate, PositionStatus, StockQuote, TrackedPosition, parse_ts, utcnow,
)
from marginwatch.tracking.margin import (
    GOLD_FREE_MARGIN, chargeable_margin, daily_interest_rate, margin_call_price,
    robinhood_margin_rate, roi_pct,
)
from marginwatch.tracking.risk_alerts import check_for_risk_alerts

SECONDS_PER_DAY = 86400


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def calculate_daily_update(
    position: TrackedPosition,
    quote: StockQuote | float,
    now: datetime | None = None,
    free_allowance: float = GOLD_FREE_MARGIN,
) -> TrackedPosition:
    """Return a copy of the position refreshed at the quoted price.

    Statuses only move forward: an expired/completed/stopped position keeps
    its status, only active ones are checked for expiry, target and stop.
    Today's daily update replaces any earlier one from the same UTC date.
    """
    now = now or utcnow()
    current_price = quote.price if isinstance(quote, StockQuote) else float(quote)

    entry_date = parse_ts(position.entry_date) or now
    days_elapsed = max(0, math.floor((now - entry_date).total_seconds() / SECONDS_PER_DAY))

    status = position.status
    expiration = parse_ts(position.expiration_date)
    if expiration and now >= expiration and status == PositionStatus.ACTIVE:
        status = PositionStatus.EXPIRED

    rate = robinhood_margin_rate(position.margin_used)
    chargeable = chargeable_margin(position.margin_used, position.is_gold_subscriber, free_allowance)
    total_interest = chargeable * daily_interest_rate(rate) * days_elapsed

    gross_profit = (current_price - position.entry_price) * position.shares
    current_profit = gross_profit - total_interest
    current_roi = _finite(roi_pct(current_profit, position.own_cash))

    call_price = margin_call_price(position.margin_used, position.shares)
    at_risk = position.shares > 0 and current_price <= call_price

    if status == PositionStatus.ACTIVE:
        if current_price >= position.exit_price:
            status = PositionStatus.COMPLETED
        elif current_price <= position.stop_loss:
            status = PositionStatus.STOPPED

    today = DailyUpdate(
        date=now.date().isoformat(),
        price=current_price,
        profit=gross_profit,
        loss=abs(gross_profit) if gross_profit < 0 else 0.0,
        total_interest=total_interest,
        roi=current_roi,
        margin_call_risk=at_risk,
    )
    updates = list(position.daily_updates)
    if updates and updates[-1].date == today.date:
        updates[-1] = today
    else:
        updates.append(today)

    updated = replace(
        position,
        current_price=current_price,
        current_profit=current_profit,
        current_roi=current_roi,
        days_elapsed=days_elapsed,
        total_interest_paid=total_interest,
        status=status,
        daily_updates=updates,
        risk_alerts=list(position.risk_alerts),
        last_risk_check=now.isoformat(),
    )
    updated.risk_alerts.extend(check_for_risk_alerts(updated, now=now))
    return updated
