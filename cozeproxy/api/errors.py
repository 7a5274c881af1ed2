"""Render every failure as an OpenAI error envelope."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.exceptions import ProxyError

logger = logging.getLogger("coze-proxy")


def error_envelope(
    message: str, error_type: str, code: Optional[str]
) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type, "code": code}}


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.message, exc.error_type, exc.code),
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content = detail
    elif exc.status_code == 404:
        content = error_envelope(
            f"Unknown route: {request.method} {request.url.path}",
            "invalid_request_error",
            "not_found",
        )
    else:
        error_type = "invalid_request_error" if exc.status_code < 500 else "server_error"
        content = error_envelope(str(detail), error_type, None)
    return JSONResponse(
        status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None)
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            f"Invalid request: {exc.errors()}", "invalid_request_error", "invalid_request"
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_envelope(
            str(exc) or "Internal server error", "server_error", "internal_error"
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
