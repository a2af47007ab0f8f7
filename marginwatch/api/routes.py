"""REST API endpoint handlers — positions, alerts, alert rules and the margin calculator."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

import structlog
from aiohttp import web

from marginwatch.alerts.engine import new_config_id
from marginwatch.alerts.evaluators import UNSUPPORTED_TYPES
from marginwatch.alerts.unified import TIME_RANGES
from marginwatch.api import ctx_key
from marginwatch.shell.contract import (
    AlertConfiguration, AlertStatus, PositionStatus, Severity, TrackedPosition, alert_category,
)
from marginwatch.tracking.margin import (
    PRESETS, apply_preset, calculate_trade, format_roi, generate_scenarios, margin_call_price,
)

log = structlog.get_logger()

VERSION = "1.0.0"

POSITION_FIELDS = (
    "symbol", "entry_price", "exit_price", "stop_loss", "shares", "investment_amount",
    "margin_used", "own_cash", "margin_ratio", "trade_duration",
)


def _safe_int(value: str | None, default: int) -> int:
    """Parse int from query param, returning default on failure."""
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def _safe_float(value: str | None) -> float | None:
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _envelope(data) -> dict:
    return {
        "data": data,
        "meta": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
        },
    }


def _error_envelope(code: str, message: str) -> dict:
    return {
        "error": {"code": code, "message": message},
        "meta": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
        },
    }


def _bad_request(message: str) -> web.Response:
    return web.json_response(_error_envelope("bad_request", message), status=400)


def _not_found(message: str) -> web.Response:
    return web.json_response(_error_envelope("not_found", message), status=404)


async def _json_body(request: web.Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _position_view(p: TrackedPosition) -> dict:
    data = p.to_dict()
    data["margin_call_price"] = round(margin_call_price(p.margin_used, p.shares), 2)
    data["roi_display"] = format_roi(p.current_roi) if p.current_roi is not None else None
    data["open_risk_alerts"] = sum(1 for a in p.risk_alerts if not a.acknowledged)
    return data


# --- Positions ---

async def positions_handler(request: web.Request) -> web.Response:
    positions = request.app[ctx_key]["positions"]
    status = request.query.get("status")
    if status == "completed":
        items = await positions.completed()
    elif status:
        try:
            wanted = PositionStatus(status)
        except ValueError:
            return _bad_request(f"Unknown status '{status}'")
        items = [p for p in await positions.list_all() if p.status == wanted]
    else:
        items = await positions.list_all()
    return web.json_response(_envelope([_position_view(p) for p in items]))


def _sized_position(body: dict) -> dict | None:
    """Fill shares/margin/cash from calculator inputs when not given explicitly."""
    if "shares" in body:
        return body
    try:
        plan = calculate_trade(
            investment_amount=float(body["investment_amount"]),
            margin_ratio=float(body["margin_ratio"]),
            entry_price=float(body["entry_price"]),
            exit_price=float(body["exit_price"]),
            stop_loss=float(body["stop_loss"]),
            trade_duration=int(body["trade_duration"]),
            is_gold_subscriber=bool(body.get("is_gold_subscriber", False)),
        )
    except (KeyError, TypeError, ValueError):
        return None
    return {
        **body,
        "shares": plan.shares,
        "investment_amount": plan.actual_investment,
        "margin_used": plan.actual_margin_used,
        "own_cash": plan.actual_own_cash,
    }


async def create_position_handler(request: web.Request) -> web.Response:
    ctx = request.app[ctx_key]
    body = await _json_body(request)
    if body is None:
        return _bad_request("Body must be a JSON object")
    sized = _sized_position(body)
    missing = [f for f in POSITION_FIELDS if sized is None or f not in sized]
    if missing:
        return _bad_request(f"Missing fields: {', '.join(missing)}")

    try:
        position = await ctx["positions"].create(
            symbol=str(sized["symbol"]).upper(),
            stock_name=str(sized.get("stock_name") or sized["symbol"]),
            entry_price=float(sized["entry_price"]),
            exit_price=float(sized["exit_price"]),
            stop_loss=float(sized["stop_loss"]),
            shares=float(sized["shares"]),
            investment_amount=float(sized["investment_amount"]),
            margin_used=float(sized["margin_used"]),
            own_cash=float(sized["own_cash"]),
            margin_ratio=float(sized["margin_ratio"]),
            trade_duration=int(sized["trade_duration"]),
            is_gold_subscriber=bool(sized.get("is_gold_subscriber", False)),
        )
    except (TypeError, ValueError) as e:
        return _bad_request(str(e))
    return web.json_response(_envelope(_position_view(position)), status=201)


async def delete_position_handler(request: web.Request) -> web.Response:
    position_id = request.match_info["id"]
    if not await request.app[ctx_key]["positions"].remove(position_id):
        return _not_found(f"No position '{position_id}'")
    return web.json_response(_envelope({"id": position_id, "removed": True}))


async def renew_position_handler(request: web.Request) -> web.Response:
    positions = request.app[ctx_key]["positions"]
    position_id = request.match_info["id"]
    body = await _json_body(request) or {}
    days = _safe_int(body.get("additional_days"), 0)
    if days <= 0:
        return _bad_request("additional_days must be a positive integer")
    if not await positions.renew(position_id, days):
        return _not_found(f"No position '{position_id}'")
    return web.json_response(_envelope(_position_view(await positions.get(position_id))))


# --- Unified alerts ---

async def alerts_handler(request: web.Request) -> web.Response:
    unified = request.app[ctx_key]["unified"]
    q = request.query
    try:
        status = AlertStatus(q["status"]) if "status" in q else None
        severity = Severity(q["severity"]) if "severity" in q else None
    except ValueError as e:
        return _bad_request(str(e))
    alert_type = q.get("type")
    if alert_type not in (None, "trading", "risk"):
        return _bad_request("type must be 'trading' or 'risk'")

    alerts = await unified.filter_alerts(status=status, alert_type=alert_type, severity=severity,
                                         symbol=q.get("symbol"))
    limit = min(_safe_int(q.get("limit"), 100), 500)
    return web.json_response(_envelope([a.to_dict() for a in alerts[:limit]]))


async def alert_stats_handler(request: web.Request) -> web.Response:
    unified = request.app[ctx_key]["unified"]
    time_range = request.query.get("range", "7d")
    if time_range not in TIME_RANGES:
        return _bad_request(f"range must be one of {', '.join(TIME_RANGES)}")
    data = {
        "feed": await unified.statistics(),
        "rules": unified.alert_statistics(time_range),
    }
    return web.json_response(_envelope(data))


async def acknowledge_alert_handler(request: web.Request) -> web.Response:
    alert_id = request.match_info["id"]
    if not await request.app[ctx_key]["unified"].acknowledge(alert_id):
        return _not_found(f"No alert '{alert_id}'")
    return web.json_response(_envelope({"id": alert_id, "status": AlertStatus.ACKNOWLEDGED.value}))


async def dismiss_alert_handler(request: web.Request) -> web.Response:
    alert_id = request.match_info["id"]
    if not await request.app[ctx_key]["unified"].dismiss(alert_id):
        return _not_found(f"No alert '{alert_id}'")
    return web.json_response(_envelope({"id": alert_id, "dismissed": True}))


# --- Alert rules ---

def _config_view(config: AlertConfiguration) -> dict:
    data = config.to_dict()
    data["category"] = alert_category(config.type).value
    data["supported"] = config.type not in UNSUPPORTED_TYPES
    return data


async def alert_configs_handler(request: web.Request) -> web.Response:
    engine = request.app[ctx_key]["engine"]
    return web.json_response(_envelope([_config_view(c) for c in engine.get_alerts()]))


async def create_alert_config_handler(request: web.Request) -> web.Response:
    engine = request.app[ctx_key]["engine"]
    body = await _json_body(request)
    if body is None:
        return _bad_request("Body must be a JSON object")
    if "type" not in body or "name" not in body:
        return _bad_request("Missing fields: type, name")
    body.setdefault("id", new_config_id())
    if engine.get_alert(body["id"]) is not None:
        return _bad_request(f"Alert rule '{body['id']}' already exists")
    try:
        config = AlertConfiguration.from_dict(body)
    except (KeyError, TypeError, ValueError) as e:
        return _bad_request(f"Invalid alert rule: {e}")
    config = await engine.add_alert(config)
    return web.json_response(_envelope(_config_view(config)), status=201)


async def update_alert_config_handler(request: web.Request) -> web.Response:
    engine = request.app[ctx_key]["engine"]
    config_id = request.match_info["id"]
    body = await _json_body(request)
    if body is None:
        return _bad_request("Body must be a JSON object")
    try:
        updated = await engine.update_alert(config_id, body)
    except (KeyError, TypeError, ValueError) as e:
        return _bad_request(f"Invalid update: {e}")
    if not updated:
        return _not_found(f"No alert rule '{config_id}'")
    return web.json_response(_envelope(_config_view(engine.get_alert(config_id))))


async def delete_alert_config_handler(request: web.Request) -> web.Response:
    config_id = request.match_info["id"]
    if not await request.app[ctx_key]["engine"].remove_alert(config_id):
        return _not_found(f"No alert rule '{config_id}'")
    return web.json_response(_envelope({"id": config_id, "removed": True}))


# --- Calculator ---

async def calculator_handler(request: web.Request) -> web.Response:
    """Trade sizing. ?preset= fills ratio/exit/stop/duration from entry_price."""
    q = request.query
    entry = _safe_float(q.get("entry_price"))
    investment = _safe_float(q.get("investment_amount"))
    if not entry or entry <= 0 or not investment or investment <= 0:
        return _bad_request("entry_price and investment_amount must be positive numbers")

    params: dict = {}
    preset = q.get("preset")
    if preset:
        if preset not in PRESETS:
            return _bad_request(f"preset must be one of {', '.join(PRESETS)}")
        params = apply_preset(preset, entry)
    for name in ("margin_ratio", "exit_price", "stop_loss"):
        value = _safe_float(q.get(name))
        if value is not None:
            params[name] = value
    if "trade_duration" in q:
        params["trade_duration"] = _safe_int(q.get("trade_duration"), 30)

    missing = [n for n in ("margin_ratio", "exit_price", "stop_loss", "trade_duration") if n not in params]
    if missing:
        return _bad_request(f"Missing parameters: {', '.join(missing)}")
    if not 0 <= params["margin_ratio"] <= 100:
        return _bad_request("margin_ratio must be 0-100")

    margin_config = request.app[ctx_key]["config"].margin
    gold = q.get("gold", "false").lower() in ("1", "true", "yes")
    plan = calculate_trade(investment, params["margin_ratio"], entry, params["exit_price"],
                           params["stop_loss"], params["trade_duration"], is_gold_subscriber=gold,
                           free_allowance=margin_config.gold_free_margin_usd)
    data = asdict(plan)
    data["inputs"] = {"investment_amount": investment, "entry_price": entry, "is_gold_subscriber": gold, **params}
    data["scenarios"] = generate_scenarios(
        entry, plan.shares, plan.actual_margin_used, plan.actual_own_cash, plan.total_interest,
        maintenance=margin_config.maintenance_pct,
    )
    return web.json_response(_envelope(data))


# --- Market ---

async def search_handler(request: web.Request) -> web.Response:
    market = request.app[ctx_key]["market"]
    results = await market.search(request.query.get("q", ""))
    return web.json_response(_envelope([asdict(r) for r in results]))


async def system_handler(request: web.Request) -> web.Response:
    ctx = request.app[ctx_key]
    conditions = ctx["engine"].market_conditions
    data = {
        "status": "running",
        "version": VERSION,
        "started_at": ctx["started_at"].isoformat(),
        "uptime_seconds": (datetime.now(timezone.utc) - ctx["started_at"]).total_seconds(),
        "market_conditions": asdict(conditions) if conditions else None,
    }
    return web.json_response(_envelope(data))


def setup_routes(app: web.Application) -> None:
    """Register all REST API routes."""
    app.router.add_get("/v1/system", system_handler)
    app.router.add_get("/v1/positions", positions_handler)
    app.router.add_post("/v1/positions", create_position_handler)
    app.router.add_delete("/v1/positions/{id}", delete_position_handler)
    app.router.add_post("/v1/positions/{id}/renew", renew_position_handler)
    app.router.add_get("/v1/alerts", alerts_handler)
    app.router.add_get("/v1/alerts/stats", alert_stats_handler)
    app.router.add_post("/v1/alerts/{id}/acknowledge", acknowledge_alert_handler)
    app.router.add_post("/v1/alerts/{id}/dismiss", dismiss_alert_handler)
    app.router.add_get("/v1/alert-configs", alert_configs_handler)
    app.router.add_post("/v1/alert-configs", create_alert_config_handler)
    app.router.add_patch("/v1/alert-configs/{id}", update_alert_config_handler)
    app.router.add_delete("/v1/alert-configs/{id}", delete_alert_config_handler)
    app.router.add_get("/v1/calculator", calculator_handler)
    app.router.add_get("/v1/search", search_handler)
