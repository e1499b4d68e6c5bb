from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any

import structlog
from fastapi import Request


def configure_logging(env: str = "development") -> None:
    """Configure structlog for console logs to stdout.

    Development gets colored key/value output; other environments get
    one JSON object per line so log shippers can parse them.
    """
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    level = logging.DEBUG if env == "development" else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer: Any
    if env == "development":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def new_correlation_id() -> str:
    """Short id for tying together the log lines of one request or upstream call."""
    return uuid.uuid4().hex[:8]


async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Bind request id and caller into the log context and time the request.

    An incoming ``x-request-id`` is kept; otherwise a short correlation id is
    generated. The id is echoed back on the response.
    """
    start = time.perf_counter()

    request_id = request.headers.get("x-request-id") or new_correlation_id()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        path=str(request.url.path),
        tenant=request.headers.get("x-user-id") or "anonymous",
    )

    response = None
    try:
        response = await call_next(request)
    finally:
        logger = structlog.get_logger("request")
        logger.info(
            "request.completed",
            method=request.method,
            status=response.status_code if response is not None else 500,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        structlog.contextvars.clear_contextvars()

    response.headers["x-request-id"] = request_id
    return response
