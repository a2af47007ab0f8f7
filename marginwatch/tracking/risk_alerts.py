"""Risk alert heuristics over a single position's own history."""

from __future__ import annotations

from datetime import datetime

import structlog

from marginwatch.shell.contract import (
    RiskAlert, RiskAlertType, Severity, TrackedPosition, utcnow,
)
from marginwatch.tracking.margin import margin_call_price

log = structlog.get_logger()

SUDDEN_LOSS_PCT = -10.0
VOLATILITY_MOVE_PCT = 15.0
PROFIT_DECLINE_ROI = -5.0


def _alert(position: TrackedPosition, kind: str, alert_type: RiskAlertType,
           severity: Severity, message: str, now: datetime) -> RiskAlert:
    stamp = int(now.timestamp() * 1000)
    return RiskAlert(
        id=f"{position.id}-{kind}-{stamp}",
        type=alert_type,
        severity=severity,
        message=message,
        timestamp=now.isoformat(),
    )


def check_for_risk_alerts(position: TrackedPosition, now: datetime | None = None) -> list[RiskAlert]:
    """Evaluate all four heuristics; any number may fire in one pass."""
    now = now or utcnow()
    alerts: list[RiskAlert] = []
    updates = position.daily_updates
    price = position.current_price
    roi = position.current_roi

    # Sudden loss: day-over-day ROI change
    if len(updates) >= 2:
        yesterday, today = updates[-2], updates[-1]
        if yesterday.roi != 0:
            daily_change = (today.roi - yesterday.roi) / abs(yesterday.roi) * 100
            if daily_change < SUDDEN_LOSS_PCT:
                if daily_change < -25:
                    severity = Severity.HIGH
                elif daily_change < -15:
                    severity = Severity.MEDIUM
                else:
                    severity = Severity.LOW
                alerts.append(_alert(
                    position, "sudden-loss", RiskAlertType.SUDDEN_LOSS, severity,
                    f"Sudden loss detected: {daily_change:.2f}% drop in ROI", now,
                ))

    # High volatility: large move from entry while losing
    if price and position.entry_price:
        move = abs((price - position.entry_price) / position.entry_price * 100)
        if move > VOLATILITY_MOVE_PCT and roi is not None and roi < 0:
            alerts.append(_alert(
                position, "volatility", RiskAlertType.HIGH_VOLATILITY,
                Severity.HIGH if move > 25 else Severity.MEDIUM,
                f"High volatility detected: {move:.2f}% price movement", now,
            ))

    # Margin call proximity (25% maintenance)
    call_price = margin_call_price(position.margin_used, position.shares)
    if price and price <= call_price:
        alerts.append(_alert(
            position, "margin-risk", RiskAlertType.MARGIN_RISK, Severity.HIGH,
            f"Margin call risk: Price {price:.2f} below threshold {call_price:.2f}", now,
        ))

    # Profit decline: strictly falling ROI over the last three updates
    if len(updates) >= 3:
        last_three = updates[-3:]
        decreasing = all(last_three[i].roi < last_three[i - 1].roi for i in range(1, 3))
        if decreasing and roi is not None and roi < PROFIT_DECLINE_ROI:
            alerts.append(_alert(
                position, "profit-decline", RiskAlertType.PROFIT_DECLINE,
                Severity.HIGH if roi < -15 else Severity.MEDIUM,
                f"Consistent profit decline over 3 days, current ROI: {roi:.2f}%", now,
            ))

    if alerts:
        log.info("risk.alerts_raised", position=position.id, symbol=position.symbol,
                 types=[a.type.value for a in alerts])
    return alerts
