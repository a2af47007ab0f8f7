"""WebSocket event stream — pushes alert and position events to connected clients."""

from __future__ import annotations

import asyncio
import json
from typing import Awaitable, Callable

import structlog
from aiohttp import web, WSMsgType

log = structlog.get_logger()


class WebSocketManager:
    """Tracks connected WebSocket clients and broadcasts events."""

    MAX_CLIENTS = 50

    def __init__(self, snapshot: Callable[[], Awaitable[dict]] | None = None) -> None:
        self._clients: set[web.WebSocketResponse] = set()
        self._snapshot = snapshot

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def broadcast(self, event: dict) -> None:
        """Send event to all connected clients concurrently."""
        if not self._clients:
            return
        msg = json.dumps(event, default=str)
        clients = list(self._clients)
        results = await asyncio.gather(
            *[ws.send_str(msg) for ws in clients],
            return_exceptions=True,
        )
        closed = {clients[i] for i, r in enumerate(results) if isinstance(r, Exception)}
        if closed:
            self._clients -= closed
            log.warning("ws.clients_dropped", count=len(closed), remaining=len(self._clients))

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        if len(self._clients) >= self.MAX_CLIENTS:
            raise web.HTTPServiceUnavailable(text="Too many WebSocket connections")

        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)
        self._clients.add(ws)
        log.info("ws.client_connected", clients=len(self._clients))

        # New clients get the current alert picture before live events
        if self._snapshot is not None:
            try:
                await ws.send_str(json.dumps(await self._snapshot(), default=str))
            except Exception as e:
                log.warning("ws.snapshot_failed", error=str(e))

        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    break
                # Feed is one-way
        finally:
            self._clients.discard(ws)
            log.info("ws.client_disconnected", clients=len(self._clients))

        return ws

    async def close(self) -> None:
        for ws in list(self._clients):
            await ws.close()
        self._clients.clear()
