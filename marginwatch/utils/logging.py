"""Logging for the service — structlog with a console or JSON renderer.

Event names are dotted (``positions.refreshed``, ``alerts.triggered``) with
key/value context. JSON output is chosen by argument, or by JSON_LOGS=1 when
the argument is left unset.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

# Standard-library loggers of the HTTP client, scheduler and API server
LIBRARY_LOGGERS = ("httpx", "httpcore", "apscheduler", "aiohttp.access", "aiosqlite")


def _json_from_env() -> bool:
    return os.environ.get("JSON_LOGS", "").strip().lower() in ("1", "true", "yes")


def setup_logging(log_level: str = "INFO", json_logs: bool | None = None) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    if json_logs is None:
        json_logs = _json_from_env()

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        # Tracebacks become structured fields instead of preformatted text
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
