"""Per-request access logging, enabled through proxy_settings.logging."""

import logging
import time
from typing import Awaitable, Callable

from fastapi import Request, Response

logger = logging.getLogger("coze-proxy")


async def log_requests(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log method, path, status and latency of every request."""
    started = time.monotonic()
    client = request.client.host if request.client else "-"
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.exception(
            "%s %s %s -> unhandled error (%.1fms)",
            client, request.method, request.url.path, elapsed_ms,
        )
        raise
    elapsed_ms = (time.monotonic() - started) * 1000
    logger.info(
        "%s %s %s -> %d (%.1fms)",
        client, request.method, request.url.path, response.status_code, elapsed_ms,
    )
    return response
