"""Position refresher — fetches quotes for active positions and applies daily updates.

At most one refresh per position is in flight; a tick that finds a position
still refreshing skips it. Quotes are fetched concurrently and each update is
written through the position store's locked read/modify/write.
"""

from __future__ import annotations

import asyncio

import structlog

from marginwatch.shell.contract import StockQuote, TrackedPosition
from marginwatch.shell.market import MarketData, MarketDataError
from marginwatch.tracking.daily import calculate_daily_update
from marginwatch.tracking.margin import GOLD_FREE_MARGIN
from marginwatch.tracking.positions import PositionStore

log = structlog.get_logger()


class PositionRefresher:
    def __init__(self, positions: PositionStore, market: MarketData,
                 free_allowance: float = GOLD_FREE_MARGIN) -> None:
        self._positions = positions
        self._market = market
        self._free_allowance = free_allowance
        self._in_flight: dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def in_flight(self) -> set[str]:
        return set(self._in_flight)

    async def refresh_all(self) -> dict[str, StockQuote]:
        """Refresh every active position not already refreshing. Returns quotes by symbol."""
        if self._closed:
            return {}
        active = await self._positions.active()
        started: list[tuple[TrackedPosition, asyncio.Task]] = []
        for position in active:
            if position.id in self._in_flight:
                log.debug("positions.refresh_skipped", id=position.id, reason="in_flight")
                continue
            task = asyncio.create_task(self._refresh_one(position))
            self._in_flight[position.id] = task
            task.add_done_callback(lambda _t, pid=position.id: self._in_flight.pop(pid, None))
            started.append((position, task))

        if not started:
            return {}
        results = await asyncio.gather(*(task for _, task in started), return_exceptions=True)
        quotes: dict[str, StockQuote] = {}
        failed = 0
        for (position, _), result in zip(started, results):
            if isinstance(result, StockQuote):
                quotes[result.symbol] = result
            elif isinstance(result, asyncio.CancelledError):
                continue
            elif isinstance(result, BaseException):
                failed += 1
                log.error("positions.refresh_failed", id=position.id, symbol=position.symbol,
                          error=str(result), error_type=type(result).__name__)
        log.info("positions.refreshed", active=len(active), refreshed=len(quotes), failed=failed)
        return quotes

    async def _refresh_one(self, position: TrackedPosition) -> StockQuote | None:
        try:
            quote = await self._market.get_quote(position.symbol)
        except MarketDataError as e:
            log.warning("positions.quote_failed", id=position.id, symbol=position.symbol, error=str(e))
            return None

        # Applied to the stored copy so edits made while the quote was in flight are kept
        result = await self._positions.apply(
            position.id,
            lambda current: calculate_daily_update(current, quote, free_allowance=self._free_allowance),
        )
        if result is None:
            return quote
        before, after = result

        if after.status != before.status:
            log.info("positions.status_changed", id=position.id, symbol=position.symbol,
                     old=before.status.value, new=after.status.value, price=quote.price)
        new_risk = len(after.risk_alerts) - len(before.risk_alerts)
        if new_risk:
            log.warning("positions.risk_alerts", id=position.id, symbol=position.symbol, count=new_risk)
        return quote

    async def close(self) -> None:
        """Cancel in-flight refreshes and wait for them to unwind."""
        self._closed = True
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            log.info("positions.refresh_cancelled", count=len(tasks))
        self._in_flight.clear()
