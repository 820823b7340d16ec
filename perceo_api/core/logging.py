"""Structured logging via structlog.

Configured once from ``create_app()``. Renderer selection:
  debug=True : ``ConsoleRenderer`` for local development.
  debug=False: ``JSONRenderer`` for production log shipping.

Every event gets the current ``request_id`` (set by RequestIdMiddleware)
so the configure / callback steps of one request can be grepped together.
Modules keep using ``logging.getLogger(__name__)``; the stdlib bridge
below routes those records through the same output.
"""

from __future__ import annotations

import logging
import sys

import structlog

from perceo_api.core.middleware import get_request_id


def _inject_request_id(
    logger: logging.Logger,
    method: str,
    event_dict: dict,
) -> dict:
    """Structlog processor: add request_id from the ContextVar when present."""
    request_id = get_request_id()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def configure_structlog(debug: bool = True) -> None:
    """Configure structlog for the application lifetime. Idempotent."""
    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_request_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )
    # httpx logs every request URL at INFO; keep it at WARNING outside debug.
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)
