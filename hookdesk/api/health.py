"""Health endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from hookdesk import __version__
from hookdesk.api.schemas import HealthResponse
from hookdesk.gateway import gateway

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        ok=True,
        version=__version__,
        pending_permissions=len(gateway.list_pending()),
    )
