"""Dependency helpers for API endpoints."""

from __future__ import annotations

import hmac

from fastapi import Request

from hookdesk.api.errors import raise_http_error


def _bearer(request: Request) -> str | None:
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not credentials:
        return None
    return credentials.strip()


async def require_token(request: Request) -> None:
    """Reject the request unless it carries the daemon's bearer token.

    No token configured on ``app.state`` means the API is open, which is the
    default for a daemon bound to localhost.
    """
    expected = getattr(request.app.state, "agent_token", None)
    if not expected:
        return
    supplied = _bearer(request)
    if supplied is None or not hmac.compare_digest(supplied, expected):
        # Read the body so clients that are still sending do not hang.
        await request.body()
        raise_http_error("UNAUTHORIZED", "Missing or invalid bearer token", 401)
