"""API Server — aiohttp app with REST routes, WebSocket feed and metrics.

No authentication: bind to localhost or a private network.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from aiohttp import web

from marginwatch.api import ctx_key
from marginwatch.api.metrics import metrics_handler
from marginwatch.api.routes import VERSION, setup_routes
from marginwatch.api.websocket import WebSocketManager

log = structlog.get_logger()


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Catch unhandled exceptions and return generic error (no tracebacks to clients)."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        log.error("api.unhandled_error", path=request.path, error=str(e),
                  error_type=type(e).__name__)
        return web.json_response(
            {
                "error": {"code": "internal_error", "message": "An unexpected error occurred"},
                "meta": {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "version": VERSION,
                },
            },
            status=500,
        )


def create_app(config, positions, engine, unified, market) -> tuple[web.Application, WebSocketManager]:
    """Create and configure the aiohttp application."""
    app = web.Application(middlewares=[error_middleware])

    # Shared context for route handlers
    app[ctx_key] = {
        "config": config,
        "positions": positions,
        "engine": engine,
        "unified": unified,
        "market": market,
        "version": VERSION,
        "started_at": datetime.now(timezone.utc),
    }

    setup_routes(app)
    app.router.add_get("/metrics", metrics_handler)

    async def snapshot() -> dict:
        return {"event": "snapshot", "statistics": await unified.statistics()}

    ws_manager = WebSocketManager(snapshot=snapshot)
    app.router.add_get("/v1/events", ws_manager.handle)

    return app, ws_manager
