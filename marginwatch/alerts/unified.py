"""Unified Alert View — one feed over rule-engine alerts and position risk alerts."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import structlog

from marginwatch.alerts.engine import AlertEngine
from marginwatch.shell.contract import (
    AlertStatus, Severity, TrackedPosition, TriggeredAlert, UnifiedAlert,
    alert_category, parse_ts, utcnow,
)
from marginwatch.tracking.positions import PositionStore

log = structlog.get_logger()

RISK_ALERT_TITLES = {
    "sudden_loss": "Sudden Loss Alert",
    "high_volatility": "High Volatility Warning",
    "margin_risk": "Margin Call Risk",
    "profit_decline": "Profit Decline Alert",
}

TIME_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}

SOURCE_ENGINE = "alert_engine"
SOURCE_TRACKING = "tracking_service"


def risk_alert_title(risk_type: str) -> str:
    return RISK_ALERT_TITLES.get(risk_type, "Risk Alert")


def _from_triggered(alert: TriggeredAlert) -> UnifiedAlert:
    return UnifiedAlert(
        id=alert.id,
        type="trading",
        source=SOURCE_ENGINE,
        title=alert.title,
        message=alert.message,
        severity=alert.severity,
        status=alert.status,
        triggered_at=alert.triggered_at,
        symbol=alert.symbol,
        acknowledged_at=alert.acknowledged_at,
        dismissed_at=alert.dismissed_at,
        current_value=alert.current_value,
        target_value=alert.target_value,
        metadata=alert.metadata,
        alert_id=alert.alert_id,
    )


def _from_position(position: TrackedPosition) -> list[UnifiedAlert]:
    alerts = []
    for risk in position.risk_alerts:
        alerts.append(UnifiedAlert(
            id=risk.id,
            type="risk",
            source=SOURCE_TRACKING,
            title=risk_alert_title(risk.type.value),
            message=risk.message,
            severity=risk.severity,
            status=AlertStatus.ACKNOWLEDGED if risk.acknowledged else AlertStatus.TRIGGERED,
            triggered_at=risk.timestamp,
            symbol=position.symbol,
            acknowledged_at=(risk.acknowledged_at or risk.timestamp) if risk.acknowledged else None,
            metadata={
                "entry_price": position.entry_price,
                "current_price": position.current_price,
                "shares": position.shares,
                "margin_used": position.margin_used,
            },
            alert_id=risk.id,
            entry_id=position.id,
            risk_type=risk.type.value,
        ))
    return alerts


def _sort_key(alert: UnifiedAlert) -> datetime:
    return parse_ts(alert.triggered_at) or datetime.min.replace(tzinfo=timezone.utc)


class UnifiedAlertService:
    """Read-side merge of both alert sources, plus routed acknowledge/dismiss."""

    def __init__(self, engine: AlertEngine, positions: PositionStore, timezone: str = "America/New_York") -> None:
        self._engine = engine
        self._positions = positions
        self._tz = ZoneInfo(timezone)

    def _is_today(self, ts: str, now: datetime) -> bool:
        parsed = parse_ts(ts)
        return parsed is not None and parsed.astimezone(self._tz).date() == now.astimezone(self._tz).date()

    def get_trading_alerts(self) -> list[UnifiedAlert]:
        return [_from_triggered(a) for a in self._engine.get_triggered_alerts()]

    async def get_risk_alerts(self) -> list[UnifiedAlert]:
        alerts = []
        for position in await self._positions.list_all():
            alerts.extend(_from_position(position))
        return alerts

    async def get_all_alerts(self) -> list[UnifiedAlert]:
        """Both sources, newest first."""
        merged = self.get_trading_alerts() + await self.get_risk_alerts()
        return sorted(merged, key=_sort_key, reverse=True)

    async def filter_alerts(self, status: AlertStatus | None = None, alert_type: str | None = None,
                            severity: Severity | None = None, symbol: str | None = None) -> list[UnifiedAlert]:
        alerts = await self.get_all_alerts()
        if status is not None:
            alerts = [a for a in alerts if a.status == status]
        if alert_type is not None:
            alerts = [a for a in alerts if a.type == alert_type]
        if severity is not None:
            alerts = [a for a in alerts if a.severity == severity]
        if symbol is not None:
            alerts = [a for a in alerts if a.symbol == symbol]
        return alerts

    async def _open(self) -> list[UnifiedAlert]:
        return [a for a in await self.get_all_alerts() if a.status == AlertStatus.TRIGGERED]

    async def active_count(self) -> int:
        return len(await self._open())

    async def counts_by_type(self) -> dict[str, int]:
        open_alerts = await self._open()
        trading = sum(1 for a in open_alerts if a.type == "trading")
        risk = sum(1 for a in open_alerts if a.type == "risk")
        return {"trading": trading, "risk": risk, "total": trading + risk}

    async def alerts_by_severity(self) -> dict[str, list[UnifiedAlert]]:
        open_alerts = await self._open()
        return {s.value: [a for a in open_alerts if a.severity == s] for s in Severity}

    async def recent_alerts(self, limit: int = 5) -> list[UnifiedAlert]:
        return (await self._open())[:limit]

    async def statistics(self, now: datetime | None = None) -> dict:
        """Counts over the open alerts, plus today's and acknowledged totals across all."""
        now = now or utcnow()
        all_alerts = await self.get_all_alerts()
        open_alerts = [a for a in all_alerts if a.status == AlertStatus.TRIGGERED]
        return {
            "total": len(open_alerts),
            "trading": sum(1 for a in open_alerts if a.type == "trading"),
            "risk": sum(1 for a in open_alerts if a.type == "risk"),
            "by_severity": {s.value: sum(1 for a in open_alerts if a.severity == s) for s in Severity},
            "today_count": sum(1 for a in all_alerts if self._is_today(a.triggered_at, now)),
            "acknowledged_count": sum(1 for a in all_alerts if a.status == AlertStatus.ACKNOWLEDGED),
        }

    async def _locate(self, alert_id: str) -> UnifiedAlert | None:
        return next((a for a in await self.get_all_alerts() if a.id == alert_id), None)

    async def acknowledge(self, alert_id: str) -> bool:
        alert = await self._locate(alert_id)
        if alert is None:
            return False
        if alert.source == SOURCE_ENGINE:
            ok = await self._engine.acknowledge_alert(alert_id)
        elif alert.entry_id:
            ok = await self._positions.acknowledge_risk_alert(alert.entry_id, alert_id)
        else:
            return False
        if ok:
            log.info("alerts.acknowledged", id=alert_id, source=alert.source)
        return ok

    async def dismiss(self, alert_id: str) -> bool:
        """Risk alerts have no dismissed state; dismissing one acknowledges it."""
        alert = await self._locate(alert_id)
        if alert is None:
            return False
        if alert.source == SOURCE_ENGINE:
            ok = await self._engine.dismiss_alert(alert_id)
        elif alert.entry_id:
            ok = await self._positions.acknowledge_risk_alert(alert.entry_id, alert_id)
        else:
            return False
        if ok:
            log.info("alerts.dismissed", id=alert_id, source=alert.source)
        return ok

    async def clear_old_alerts(self, older_than_days: int = 7, now: datetime | None = None) -> int:
        """Risk alerts live on their positions and go away with them."""
        return await self._engine.clear_old_alerts(older_than_days, now=now)

    def alert_statistics(self, time_range: str = "7d", now: datetime | None = None) -> dict:
        """Rule-engine dashboard figures over a trailing window (24h/7d/30d/90d)."""
        now = now or utcnow()
        window = TIME_RANGES.get(time_range, TIME_RANGES["7d"])
        configs = self._engine.get_alerts()
        triggered = self._engine.get_triggered_alerts()

        recent = [t for t in triggered if (parse_ts(t.triggered_at) or now) > now - window]
        acknowledged = [t for t in recent if t.status == AlertStatus.ACKNOWLEDGED]
        response_minutes = []
        for t in acknowledged:
            start, end = parse_ts(t.triggered_at), parse_ts(t.acknowledged_at)
            if start and end:
                response_minutes.append((end - start).total_seconds() / 60)

        total = len(recent)
        return {
            "time_range": time_range if time_range in TIME_RANGES else "7d",
            "total_alerts": len(configs),
            "active_alerts": sum(1 for c in configs if c.enabled),
            "triggered_today": sum(1 for t in triggered if self._is_today(t.triggered_at, now)),
            "accuracy_rate": len(acknowledged) / total * 100 if total else 0.0,
            "false_positive_rate": (total - len(acknowledged)) / total * 100 if total else 0.0,
            "avg_response_minutes": sum(response_minutes) / len(response_minutes) if response_minutes else 0.0,
            "category_distribution": dict(Counter(alert_category(c.type).value for c in configs)),
            "severity_distribution": dict(Counter(t.severity.value for t in triggered)),
        }
