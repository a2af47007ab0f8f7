"""Prometheus /metrics endpoint — exports position, margin and alert gauges."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from aiohttp import web
from prometheus_client import CollectorRegistry, Gauge, Info, generate_latest

from marginwatch.api import ctx_key
from marginwatch.shell.contract import PositionStatus, Severity
from marginwatch.tracking.margin import margin_call_price

log = structlog.get_logger()

# Custom registry avoids pytest conflicts with the global default registry.
registry = CollectorRegistry()

# --- Position gauges ---
positions_by_status = Gauge("mw_positions", "Tracked positions by status", ["status"], registry=registry)
margin_used_usd = Gauge("mw_margin_used_usd", "Borrowed funds across active positions", registry=registry)
interest_paid_usd = Gauge("mw_interest_paid_usd", "Accrued margin interest across active positions", registry=registry)
unrealized_profit_usd = Gauge("mw_unrealized_profit_usd", "Net profit across active positions", registry=registry)
margin_call_positions = Gauge("mw_margin_call_positions", "Active positions at or below margin-call price", registry=registry)

# --- Per-position gauges ---
position_roi = Gauge("mw_position_roi_pct", "Position ROI on own cash (%)", ["symbol", "id"], registry=registry)
position_call_distance = Gauge(
    "mw_position_margin_call_distance_pct", "Distance from current price to margin-call price (%)",
    ["symbol", "id"], registry=registry,
)

# --- Alert gauges ---
open_alerts = Gauge("mw_open_alerts", "Unhandled alerts by source type and severity", ["type", "severity"], registry=registry)
alerts_today = Gauge("mw_alerts_today", "Alerts raised today", registry=registry)
alert_rules = Gauge("mw_alert_rules", "Configured alert rules", ["enabled"], registry=registry)

# --- System ---
system_info = Info("mw_system", "MarginWatch metadata", registry=registry)
uptime_seconds = Gauge("mw_uptime_seconds", "Process uptime in seconds", registry=registry)


async def metrics_handler(request: web.Request) -> web.Response:
    """Prometheus scrape endpoint. Reads current state and returns text metrics."""
    ctx = request.app[ctx_key]
    positions = ctx["positions"]
    engine = ctx["engine"]
    unified = ctx["unified"]

    try:
        all_positions = await positions.list_all()
        for status in PositionStatus:
            positions_by_status.labels(status=status.value).set(
                sum(1 for p in all_positions if p.status == status)
            )

        active = [p for p in all_positions if p.is_active]
        margin_used_usd.set(sum(p.margin_used for p in active))
        interest_paid_usd.set(sum(p.total_interest_paid or 0 for p in active))
        unrealized_profit_usd.set(sum(p.current_profit or 0 for p in active))

        # Per-position: clear stale labels then set current
        position_roi._metrics.clear()
        position_call_distance._metrics.clear()
        at_risk = 0
        for p in active:
            position_roi.labels(symbol=p.symbol, id=p.id).set(p.current_roi or 0)
            call_price = margin_call_price(p.margin_used, p.shares)
            if p.current_price:
                position_call_distance.labels(symbol=p.symbol, id=p.id).set(
                    (p.current_price - call_price) / p.current_price * 100
                )
                if p.current_price <= call_price:
                    at_risk += 1
        margin_call_positions.set(at_risk)

        # Alerts
        open_alerts._metrics.clear()
        by_type = await unified.alerts_by_severity()
        for severity in Severity:
            items = by_type.get(severity.value, [])
            for kind in ("trading", "risk"):
                open_alerts.labels(type=kind, severity=severity.value).set(
                    sum(1 for a in items if a.type == kind)
                )
        stats = await unified.statistics()
        alerts_today.set(stats["today_count"])

        rules = engine.get_alerts()
        alert_rules.labels(enabled="true").set(sum(1 for r in rules if r.enabled))
        alert_rules.labels(enabled="false").set(sum(1 for r in rules if not r.enabled))

        system_info.info({"version": ctx.get("version", "1.0.0"), "timezone": ctx["config"].timezone})
        started_at = ctx.get("started_at")
        if started_at:
            uptime_seconds.set((datetime.now(timezone.utc) - started_at).total_seconds())

    except Exception as e:
        log.error("metrics.collect_error", error=str(e), error_type=type(e).__name__)

    output = generate_latest(registry)
    resp = web.Response(body=output)
    resp.content_type = "text/plain"
    resp.headers["Content-Type"] = "text/plain; version=0.0.4; charset=utf-8"
    return resp
