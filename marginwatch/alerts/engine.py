"""Alert Rule Engine — evaluates configured alert rules against tracked positions.

Configurations and triggered alerts are persisted together under one key.
In-memory state is authoritative while the process runs; every mutation is
written straight back.
"""

from __future__ import annotations

import random
import string
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

import pandas as pd
import structlog

from marginwatch.alerts.evaluators import (
    EVALUATORS, NEEDS_HISTORY, NEEDS_MARKET, PORTFOLIO_WIDE, UNSUPPORTED_TYPES,
    EvalContext, Signal,
)
from marginwatch.shell.contract import (
    AlertCondition, AlertConfiguration, AlertStatus, AlertType, MarketConditions,
    Severity, StockQuote, TrackedPosition, TriggeredAlert, parse_ts, to_plain, utcnow,
)
from marginwatch.shell.database import ALERT_STATE_KEY, Database

log = structlog.get_logger()


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def new_alert_id(now: datetime | None = None) -> str:
    """Triggered alert id: alert_{epoch_ms}_{9 random base36 chars}."""
    now = now or utcnow()
    return f"alert_{int(now.timestamp() * 1000)}_{_random_suffix()}"


def new_config_id(now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"config_{int(now.timestamp() * 1000)}_{_random_suffix()}"


def default_configurations(now: datetime | None = None) -> list[AlertConfiguration]:
    """Example rules seeded into an empty store. Both start disabled."""
    created = (now or utcnow()).isoformat()
    return [
        AlertConfiguration(
            id="default_profit_5percent",
            type=AlertType.PERCENTAGE_GAIN,
            name="5% Profit Alert",
            description="Alert when position gains 5%",
            conditions=[AlertCondition(field="percentage_gain", operator=">=", value=5)],
            severity=Severity.MEDIUM,
            enabled=False,
            created_at=created,
            sound_enabled=True,
            email_enabled=False,
            push_enabled=True,
        ),
        AlertConfiguration(
            id="default_loss_5percent",
            type=AlertType.PERCENTAGE_LOSS,
            name="5% Stop Loss Alert",
            description="Alert when position loses 5%",
            conditions=[AlertCondition(field="percentage_loss", operator=">=", value=5)],
            severity=Severity.HIGH,
            enabled=False,
            created_at=created,
            sound_enabled=True,
            email_enabled=True,
            push_enabled=True,
        ),
    ]


class AlertEngine:
    """Rule-based alerting over tracked positions."""

    def __init__(self, db: Database, dedupe_triggered: bool = True, seed_defaults: bool = True,
                 timezone: str = "America/New_York") -> None:
        self._db = db
        self._dedupe = dedupe_triggered
        self._seed_defaults = seed_defaults
        self._timezone = timezone
        self._alerts: list[AlertConfiguration] = []
        self._triggered: list[TriggeredAlert] = []
        self._market_data: dict[str, StockQuote] = {}
        self._price_history: dict[str, pd.DataFrame] = {}
        self._market_conditions: MarketConditions | None = None

    # --- Persistence ---

    async def initialize(self) -> None:
        """Load persisted state and seed default rules into an empty store."""
        await self.load()
        if self._seed_defaults and not self._alerts:
            self._alerts = default_configurations()
            await self._save()
            log.info("alerts.defaults_seeded", count=len(self._alerts))

    async def load(self) -> None:
        state = await self._db.load_json(ALERT_STATE_KEY, default={})
        if not isinstance(state, dict):
            log.error("alerts.bad_record", kind=type(state).__name__)
            state = {}
        self._alerts = self._parse(state.get("alerts") or [], AlertConfiguration.from_dict, "config")
        self._triggered = self._parse(state.get("triggered") or [], TriggeredAlert.from_dict, "triggered")
        log.info("alerts.loaded", configs=len(self._alerts), triggered=len(self._triggered))

    @staticmethod
    def _parse(items: list, factory, kind: str) -> list:
        parsed = []
        for item in items:
            try:
                parsed.append(factory(item))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("alerts.skip_invalid", kind=kind, error=str(e))
        return parsed

    async def _save(self) -> None:
        await self._db.save_json(ALERT_STATE_KEY, {
            "alerts": [a.to_dict() for a in self._alerts],
            "triggered": [t.to_dict() for t in self._triggered],
        })

    # --- Market inputs ---

    def update_market_data(self, symbol: str, quote: StockQuote) -> None:
        self._market_data[symbol] = quote

    def update_price_history(self, symbol: str, history: pd.DataFrame) -> None:
        self._price_history[symbol] = history

    def update_market_conditions(self, conditions: MarketConditions) -> None:
        self._market_conditions = conditions

    @property
    def market_conditions(self) -> MarketConditions | None:
        return self._market_conditions

    def required_inputs(self) -> tuple[bool, bool]:
        """(needs daily history, needs market conditions) for the enabled rules."""
        enabled = {a.type for a in self._alerts if a.enabled}
        return bool(enabled & NEEDS_HISTORY), bool(enabled & NEEDS_MARKET)

    # --- Evaluation ---

    def _is_expired(self, config: AlertConfiguration, now: datetime) -> bool:
        expires = parse_ts(config.expires_at)
        return expires is not None and expires <= now

    def _has_open_alert(self, config_id: str, symbol: str | None) -> bool:
        return any(
            t.alert_id == config_id and t.symbol == symbol and t.status == AlertStatus.TRIGGERED
            for t in self._triggered
        )

    def _build(self, config: AlertConfiguration, signal: Signal, now: datetime) -> TriggeredAlert:
        return TriggeredAlert(
            id=new_alert_id(now),
            alert_id=config.id,
            type=config.type,
            title=signal.title,
            message=signal.message,
            severity=signal.severity or config.severity,
            triggered_at=now.isoformat(),
            status=AlertStatus.TRIGGERED,
            symbol=signal.symbol,
            current_value=signal.current_value,
            target_value=signal.target_value,
            metadata=signal.metadata,
        )

    async def evaluate_alerts(self, positions: list[TrackedPosition],
                              now: datetime | None = None) -> list[TriggeredAlert]:
        """Run every enabled, unexpired rule once over the active positions.

        Completed, stopped and expired positions hold a stale price and are
        never evaluated. Returns the newly triggered alerts.
        """
        now = now or utcnow()
        positions = [p for p in positions if p.is_active]
        ctx = EvalContext(
            quotes=dict(self._market_data),
            history=dict(self._price_history),
            market=self._market_conditions,
            now=now,
            timezone=self._timezone,
        )
        enabled = [a for a in self._alerts if a.enabled and not self._is_expired(a, now)]
        log.debug("alerts.evaluating", rules=len(enabled), positions=len(positions))

        new_alerts: list[TriggeredAlert] = []
        for config in enabled:
            if config.type in UNSUPPORTED_TYPES:
                continue
            evaluator = EVALUATORS[config.type]
            scoped = positions
            if config.symbol and config.type not in PORTFOLIO_WIDE:
                scoped = [p for p in positions if p.symbol == config.symbol]

            config.last_checked = now.isoformat()
            try:
                signal = evaluator(config, scoped, ctx)
            except Exception as e:
                log.error("alerts.evaluator_failed", rule=config.id, type=config.type.value, error=str(e))
                continue
            if signal is None:
                continue
            if self._dedupe and self._has_open_alert(config.id, signal.symbol):
                log.debug("alerts.suppressed", rule=config.id, symbol=signal.symbol)
                continue

            alert = self._build(config, signal, now)
            config.triggered_at = alert.triggered_at
            new_alerts.append(alert)
            log.info("alerts.triggered", rule=config.id, type=config.type.value, symbol=alert.symbol,
                     severity=alert.severity.value, current=alert.current_value, target=alert.target_value)

        self._triggered.extend(new_alerts)
        if enabled:
            await self._save()
        return new_alerts

    # --- Configuration CRUD ---

    def get_alerts(self) -> list[AlertConfiguration]:
        return list(self._alerts)

    def get_alert(self, config_id: str) -> AlertConfiguration | None:
        return next((a for a in self._alerts if a.id == config_id), None)

    async def add_alert(self, config: AlertConfiguration) -> AlertConfiguration:
        if not config.created_at:
            config = replace(config, created_at=utcnow().isoformat())
        self._alerts.append(config)
        await self._save()
        log.info("alerts.config_added", rule=config.id, type=config.type.value, total=len(self._alerts))
        return config

    async def remove_alert(self, config_id: str) -> bool:
        before = len(self._alerts)
        self._alerts = [a for a in self._alerts if a.id != config_id]
        removed = len(self._alerts) != before
        if removed:
            await self._save()
            log.info("alerts.config_removed", rule=config_id)
        return removed

    async def update_alert(self, config_id: str, updates: dict[str, Any]) -> bool:
        """Shallow-merge fields onto a configuration. Returns False for unknown ids."""
        for i, config in enumerate(self._alerts):
            if config.id == config_id:
                merged = config.to_dict()
                merged.update(to_plain(updates))
                merged["id"] = config_id
                self._alerts[i] = AlertConfiguration.from_dict(merged)
                await self._save()
                return True
        return False

    # --- Triggered alert lifecycle ---

    def get_triggered_alerts(self) -> list[TriggeredAlert]:
        return list(self._triggered)

    def _find_triggered(self, alert_id: str) -> TriggeredAlert | None:
        return next((t for t in self._triggered if t.id == alert_id), None)

    async def acknowledge_alert(self, alert_id: str, now: datetime | None = None) -> bool:
        alert = self._find_triggered(alert_id)
        if alert is None:
            return False
        alert.status = AlertStatus.ACKNOWLEDGED
        alert.acknowledged_at = (now or utcnow()).isoformat()
        await self._save()
        return True

    async def dismiss_alert(self, alert_id: str, now: datetime | None = None) -> bool:
        alert = self._find_triggered(alert_id)
        if alert is None:
            return False
        alert.status = AlertStatus.DISMISSED
        alert.dismissed_at = (now or utcnow()).isoformat()
        await self._save()
        return True

    async def clear_old_alerts(self, older_than_days: int = 7, now: datetime | None = None) -> int:
        """Drop handled alerts older than the cutoff. Unhandled ones are kept."""
        cutoff = (now or utcnow()) - timedelta(days=older_than_days)
        kept = []
        for t in self._triggered:
            triggered = parse_ts(t.triggered_at)
            if t.status in (AlertStatus.TRIGGERED, AlertStatus.ACTIVE) or (triggered and triggered > cutoff):
                kept.append(t)
        removed = len(self._triggered) - len(kept)
        if removed:
            self._triggered = kept
            await self._save()
            log.info("alerts.cleared", removed=removed, kept=len(kept), days=older_than_days)
        return removed
