"""Request logging and error envelopes for the daemon's HTTP surface."""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from hookdesk.api.errors import STATUS_CODES, error_body

logger = structlog.get_logger(__name__)

# The SSE stream stays open for the lifetime of a client.
_QUIET_PATHS = frozenset({"/api/events", "/api/health"})


async def request_logging_middleware(request: Request, call_next):
    path = request.url.path
    started = time.perf_counter()
    with structlog.contextvars.bound_contextvars(
        request_id=uuid.uuid4().hex[:12], method=request.method, path=path
    ):
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Request failed", duration_ms=round((time.perf_counter() - started) * 1000, 2)
            )
            raise
        log = logger.debug if path in _QUIET_PATHS else logger.info
        log(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        body = exc.detail
    else:
        body = error_body(STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR"), str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_body("VALIDATION_ERROR", "Invalid request", details),
    )


def install(app: FastAPI) -> None:
    """Attach the logging middleware and error handlers to ``app``."""
    app.middleware("http")(request_logging_middleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
