"""SSE change feed endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from hookdesk.api.deps import require_token
from hookdesk.sse import stream_response

router = APIRouter(tags=["events"])


@router.get("/events")
async def events(_: None = Depends(require_token)):
    """SSE stream of ``{"type": "sessions" | "permissions"}`` change events."""
    return stream_response()
