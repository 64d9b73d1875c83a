"""Structured error bodies shared by endpoints and exception handlers."""

from __future__ import annotations

from typing import Any, NoReturn

from fastapi import HTTPException

from hookdesk.models import ErrorDetail, ErrorResponse

STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


def error_body(code: str, message: str, details: Any = None) -> dict:
    """``{"error": {"code", "message", "details"}}`` as a plain dict."""
    return ErrorResponse(error=ErrorDetail(code=code, message=message, details=details)).model_dump()


def raise_http_error(
    code: str, message: str, status_code: int, details: Any = None
) -> NoReturn:
    """Abort the request with a structured error payload.

    Args:
        code: Stable error code string, e.g. ``NOT_FOUND``.
        message: Human-readable error message.
        status_code: HTTP status to return.
        details: Optional machine-readable context (dict or list).
    """
    raise HTTPException(status_code=status_code, detail=error_body(code, message, details))
