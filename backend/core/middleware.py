"""FastAPI middleware and exception handlers.

Every response carries ``X-Request-ID`` (echoed from the request or
generated) and ``X-Process-Time``. The request id is bound to the log
context for the duration of the request, so engine and service log lines
emitted while serving it can be correlated.

Errors are returned as::

    {"error": {"code": "NOT_FOUND", "message": "..."}, "request_id": "..."}
"""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import WorkflowEngineError
from core.logging_config import log_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probe endpoints are polled constantly and are not worth a log line
_UNLOGGED_SUFFIXES = ("/health", "/health/nodes")


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, time it and log the outcome."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id

        started = time.perf_counter()
        with log_context(request_id=request_id):
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000

            if not request.url.path.endswith(_UNLOGGED_SUFFIXES):
                logger.log(
                    logging.WARNING if response.status_code >= 400 else logging.INFO,
                    "%s %s -> %d (%.0fms)",
                    request.method,
                    request.url.path,
                    response.status_code,
                    elapsed_ms,
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}ms"
        return response


def error_body(request: Request, code: str, message: str, details=None) -> dict:
    body = {
        "error": {"code": code, "message": message},
        "request_id": getattr(request.state, "request_id", None),
    }
    if details is not None:
        body["error"]["details"] = details
    return body


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers that turn exceptions into error bodies."""

    @app.exception_handler(WorkflowEngineError)
    async def engine_error_handler(request: Request, exc: WorkflowEngineError):
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.code, exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = jsonable_encoder(exc.errors())
        return JSONResponse(
            status_code=422,
            content=error_body(request, "VALIDATION_ERROR", "Request validation failed", details),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=error_body(request, "BAD_REQUEST", str(exc)))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        message = "Internal server error"
        if not get_settings().is_production:
            message = str(exc) or message
        return JSONResponse(status_code=500, content=error_body(request, "INTERNAL_ERROR", message))
