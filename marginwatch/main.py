"""MarginWatch — margin position tracking and alerting service.

Main entry point. Wires all components, manages lifecycle, runs the polling jobs.

Startup: load config -> connect DB -> load alert state -> start API -> start scheduler
Shutdown: stop scheduler -> cancel refreshes -> stop API -> close market client -> close DB
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog
from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from marginwatch.alerts.engine import AlertEngine
from marginwatch.alerts.unified import UnifiedAlertService
from marginwatch.api.server import create_app as create_api_app
from marginwatch.api.websocket import WebSocketManager
from marginwatch.shell.config import Config, load_config
from marginwatch.shell.database import Database
from marginwatch.shell.market import MarketData, MarketDataError
from marginwatch.tracking.positions import PositionStore
from marginwatch.tracking.refresher import PositionRefresher
from marginwatch.utils.logging import setup_logging

log = structlog.get_logger()

MARKET_CONDITIONS_TTL = timedelta(minutes=5)


class MarginWatch:
    """Main application — orchestrates all components."""

    def __init__(self, config: Config | None = None) -> None:
        self._config = config
        self._db: Database | None = None
        self._market: MarketData | None = None
        self._positions: PositionStore | None = None
        self._engine: AlertEngine | None = None
        self._unified: UnifiedAlertService | None = None
        self._refresher: PositionRefresher | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._api_runner: web.AppRunner | None = None
        self._ws: WebSocketManager | None = None
        self._history_day: dict[str, str] = {}   # symbol -> UTC date of last history fetch
        self._conditions_at: datetime | None = None
        self._running = False

    async def start(self) -> None:
        # 1. Config + logging
        if self._config is None:
            self._config = load_config()
        config = self._config
        setup_logging(config.log_level)
        log.info("marginwatch.starting", db=config.db_path, timezone=config.timezone)

        # 2. Database
        Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = Database(config.db_path)
        await self._db.connect()

        # 3. Services
        self._market = MarketData(config.market_data)
        self._positions = PositionStore(self._db)
        self._engine = AlertEngine(
            self._db,
            dedupe_triggered=config.alerts.dedupe_triggered,
            seed_defaults=config.alerts.seed_defaults,
            timezone=config.timezone,
        )
        await self._engine.initialize()
        self._unified = UnifiedAlertService(self._engine, self._positions, timezone=config.timezone)
        self._refresher = PositionRefresher(
            self._positions, self._market, free_allowance=config.margin.gold_free_margin_usd,
        )

        # 4. API server
        if config.api.enabled:
            api_app, self._ws = create_api_app(
                config, self._positions, self._engine, self._unified, self._market,
            )
            self._api_runner = web.AppRunner(api_app)
            await self._api_runner.setup()
            site = web.TCPSite(self._api_runner, config.api.host, config.api.port)
            await site.start()
            log.info("api.started", host=config.api.host, port=config.api.port)

        # 5. Scheduler
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)
        self._setup_jobs()
        self._scheduler.start()

        # 6. Prime prices so the first evaluation sees fresh quotes
        await self._refresh_prices()

        self._running = True
        log.info("marginwatch.started")
        while self._running:
            await asyncio.sleep(1)

    def _setup_jobs(self) -> None:
        polling = self._config.polling
        self._scheduler.add_job(
            self._refresh_prices, IntervalTrigger(seconds=polling.price_refresh_seconds),
            id="price_refresh", max_instances=1, coalesce=True,
        )
        self._scheduler.add_job(
            self._evaluate_alerts, IntervalTrigger(seconds=polling.alert_evaluation_seconds),
            id="alert_evaluation", max_instances=1, coalesce=True,
        )
        self._scheduler.add_job(
            self._publish_unified_view, IntervalTrigger(seconds=polling.unified_view_seconds),
            id="unified_view", max_instances=1, coalesce=True,
        )
        self._scheduler.add_job(
            self._housekeeping, IntervalTrigger(hours=24),
            id="housekeeping", max_instances=1, coalesce=True,
        )
        log.info("scheduler.configured",
                 refresh=polling.price_refresh_seconds,
                 evaluate=polling.alert_evaluation_seconds,
                 view=polling.unified_view_seconds)

    async def _broadcast(self, event: dict) -> None:
        if self._ws:
            await self._ws.broadcast(event)

    # --- Jobs ---

    async def _refresh_prices(self) -> None:
        try:
            quotes = await self._refresher.refresh_all()
        except Exception as e:
            log.error("job.refresh_failed", error=str(e), error_type=type(e).__name__)
            return
        for symbol, quote in quotes.items():
            self._engine.update_market_data(symbol, quote)
        if quotes:
            await self._broadcast({"event": "positions.refreshed", "symbols": sorted(quotes)})

    async def _load_history(self, symbols: set[str]) -> None:
        """Daily bars for each symbol, fetched at most once per UTC day."""
        today = datetime.now(timezone.utc).date().isoformat()
        period = self._config.market_data.indicator_history_period
        for symbol in sorted(symbols):
            if self._history_day.get(symbol) == today:
                continue
            try:
                history = await self._market.get_history(symbol, period)
            except MarketDataError as e:
                log.warning("market.history_failed", symbol=symbol, error=str(e))
                continue
            self._engine.update_price_history(symbol, history)
            self._history_day[symbol] = today

    async def _load_market_conditions(self) -> None:
        now = datetime.now(timezone.utc)
        if self._conditions_at and now - self._conditions_at < MARKET_CONDITIONS_TTL:
            return
        try:
            conditions = await self._market.get_market_conditions()
        except MarketDataError as e:
            log.warning("market.conditions_failed", error=str(e))
            return
        self._engine.update_market_conditions(conditions)
        self._conditions_at = now

    async def _evaluate_alerts(self) -> None:
        try:
            positions = [p for p in await self._positions.list_all() if p.is_active]
            needs_history, needs_market = self._engine.required_inputs()
            if needs_history:
                await self._load_history({p.symbol for p in positions})
            if needs_market:
                await self._load_market_conditions()

            triggered = await self._engine.evaluate_alerts(positions)
        except Exception as e:
            log.error("job.evaluation_failed", error=str(e), error_type=type(e).__name__)
            return
        for alert in triggered:
            await self._broadcast({"event": "alert.triggered", "alert": alert.to_dict()})

    async def _publish_unified_view(self) -> None:
        try:
            stats = await self._unified.statistics()
            recent = await self._unified.recent_alerts()
        except Exception as e:
            log.error("job.unified_view_failed", error=str(e), error_type=type(e).__name__)
            return
        await self._broadcast({
            "event": "alerts.summary",
            "statistics": stats,
            "recent": [a.to_dict() for a in recent],
        })

    async def _housekeeping(self) -> None:
        try:
            await self._unified.clear_old_alerts(self._config.alerts.retention_days)
        except Exception as e:
            log.error("job.housekeeping_failed", error=str(e), error_type=type(e).__name__)

    async def stop(self) -> None:
        """Graceful shutdown sequence."""
        log.info("marginwatch.stopping")
        self._running = False

        # 1. Stop scheduler
        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        # 2. Cancel in-flight quote refreshes
        if self._refresher:
            await self._refresher.close()

        # 3. Stop API server
        if self._ws:
            await self._ws.close()
        if self._api_runner:
            await self._api_runner.cleanup()

        # 4. Close market client
        if self._market:
            await self._market.close()

        # 5. Close database
        if self._db:
            await self._db.close()

        log.info("marginwatch.stopped")


async def main() -> None:
    app = MarginWatch()

    # Handle SIGTERM/SIGINT for graceful shutdown
    loop = asyncio.get_running_loop()

    _stop_task = None

    def signal_handler():
        nonlocal _stop_task
        if _stop_task is None:
            _stop_task = asyncio.create_task(app.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        pass
    finally:
        if _stop_task is not None:
            await _stop_task
        elif app._running:
            await app.stop()


def run() -> None:
    """Entry point for pyproject.toml script."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
