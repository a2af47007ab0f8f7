"""Position Store — CRUD over tracked margin positions.

All positions live in one keyed record. Every write re-reads the record,
modifies it and writes it back under one store lock, so writers in this
process never interleave. There are no transactions: two processes sharing a
database can still overwrite each other's changes.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable

import structlog

from marginwatch.shell.contract import (
    PositionStatus, TrackedPosition, parse_ts, to_plain, utcnow,
)
from marginwatch.shell.database import POSITIONS_KEY, Database

log = structlog.get_logger()


class PositionStore:
    """Tracked positions persisted under a single key."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def list_all(self) -> list[TrackedPosition]:
        raw = await self._db.load_json(POSITIONS_KEY, default=[])
        if not isinstance(raw, list):
            log.error("positions.bad_record", kind=type(raw).__name__)
            return []
        positions = []
        for item in raw:
            try:
                positions.append(TrackedPosition.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("positions.skip_invalid", id=item.get("id") if isinstance(item, dict) else None,
                            error=str(e))
        return positions

    async def _save(self, positions: list[TrackedPosition]) -> None:
        await self._db.save_json(POSITIONS_KEY, [p.to_dict() for p in positions])

    async def get(self, position_id: str) -> TrackedPosition | None:
        for p in await self.list_all():
            if p.id == position_id:
                return p
        return None

    @staticmethod
    def _generate_id(existing: set[str], now: datetime) -> str:
        """Millisecond timestamp id, bumped on collision."""
        stamp = int(now.timestamp() * 1000)
        while str(stamp) in existing:
            stamp += 1
        return str(stamp)

    async def create(
        self,
        symbol: str,
        stock_name: str,
        entry_price: float,
        exit_price: float,
        stop_loss: float,
        shares: float,
        investment_amount: float,
        margin_used: float,
        own_cash: float,
        margin_ratio: float,
        trade_duration: int,
        is_gold_subscriber: bool = False,
        now: datetime | None = None,
    ) -> TrackedPosition:
        """Start tracking a position. Inputs are stored as given."""
        now = now or utcnow()
        async with self._lock:
            positions = await self.list_all()
            position = TrackedPosition(
                id=self._generate_id({p.id for p in positions}, now),
                symbol=symbol,
                stock_name=stock_name,
                entry_price=entry_price,
                exit_price=exit_price,
                stop_loss=stop_loss,
                shares=shares,
                investment_amount=investment_amount,
                margin_used=margin_used,
                own_cash=own_cash,
                margin_ratio=margin_ratio,
                trade_duration=trade_duration,
                is_gold_subscriber=is_gold_subscriber,
                entry_date=now.isoformat(),
                expiration_date=(now + timedelta(days=trade_duration)).isoformat(),
                status=PositionStatus.ACTIVE,
                current_price=entry_price,
                current_profit=0.0,
                current_roi=0.0,
                days_elapsed=0,
                total_interest_paid=0.0,
                last_risk_check=now.isoformat(),
            )
            positions.append(position)
            await self._save(positions)
        log.info("positions.created", id=position.id, symbol=symbol, shares=shares,
                 entry=entry_price, duration=trade_duration)
        return position

    async def renew(self, position_id: str, additional_days: int) -> bool:
        """Extend expiration and force the position back to active. Unknown ids are ignored."""
        async with self._lock:
            positions = await self.list_all()
            for p in positions:
                if p.id != position_id:
                    continue
                current = parse_ts(p.expiration_date) or parse_ts(p.entry_date) or utcnow()
                p.expiration_date = (current + timedelta(days=additional_days)).isoformat()
                p.trade_duration += additional_days
                p.status = PositionStatus.ACTIVE
                await self._save(positions)
                log.info("positions.renewed", id=position_id, days=additional_days,
                         expires=p.expiration_date)
                return True
        return False

    async def remove(self, position_id: str) -> bool:
        async with self._lock:
            positions = await self.list_all()
            remaining = [p for p in positions if p.id != position_id]
            await self._save(remaining)
        removed = len(remaining) != len(positions)
        if removed:
            log.info("positions.removed", id=position_id)
        return removed

    async def update(self, position_id: str, updates: TrackedPosition | dict[str, Any]) -> bool:
        """Shallow-merge fields onto a position. Callers are trusted; no validation."""
        patch = updates.to_dict() if isinstance(updates, TrackedPosition) else to_plain(updates)
        async with self._lock:
            positions = await self.list_all()
            for i, p in enumerate(positions):
                if p.id == position_id:
                    merged = p.to_dict()
                    merged.update(patch)
                    merged["id"] = position_id
                    positions[i] = TrackedPosition.from_dict(merged)
                    await self._save(positions)
                    return True
        return False

    async def apply(
        self, position_id: str, change: Callable[[TrackedPosition], TrackedPosition],
    ) -> tuple[TrackedPosition, TrackedPosition] | None:
        """Replace a position with ``change(current)`` in one locked read/modify/write.

        Returns (before, after), or None when the id is unknown.
        """
        async with self._lock:
            positions = await self.list_all()
            for i, p in enumerate(positions):
                if p.id == position_id:
                    updated = change(p)
                    updated.id = position_id
                    positions[i] = updated
                    await self._save(positions)
                    return p, updated
        return None

    async def acknowledge_risk_alert(self, entry_id: str, alert_id: str, now: datetime | None = None) -> bool:
        async with self._lock:
            positions = await self.list_all()
            for p in positions:
                if p.id != entry_id:
                    continue
                for alert in p.risk_alerts:
                    if alert.id == alert_id:
                        if not alert.acknowledged:
                            alert.acknowledged = True
                            alert.acknowledged_at = (now or utcnow()).isoformat()
                            await self._save(positions)
                        return True
        return False

    async def active(self) -> list[TrackedPosition]:
        return [p for p in await self.list_all() if p.status == PositionStatus.ACTIVE]

    async def expired(self) -> list[TrackedPosition]:
        return [p for p in await self.list_all() if p.status == PositionStatus.EXPIRED]

    async def completed(self) -> list[TrackedPosition]:
        """Closed positions: target reached or stopped out."""
        return [
            p for p in await self.list_all()
            if p.status in (PositionStatus.COMPLETED, PositionStatus.STOPPED)
        ]
