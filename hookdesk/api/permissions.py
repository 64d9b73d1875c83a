"""Pending permission requests and their answers."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from hookdesk.api.deps import require_token
from hookdesk.api.errors import raise_http_error
from hookdesk.api.schemas import OkResponse, RespondPermissionRequest
from hookdesk.gateway import gateway
from hookdesk.models import PermissionRequest

router = APIRouter(tags=["permissions"])
logger = structlog.get_logger(__name__)


@router.get("/permissions", response_model=list[PermissionRequest])
async def list_permissions(_: None = Depends(require_token)) -> list[PermissionRequest]:
    """Requests waiting for a decision, newest first."""
    return gateway.list_pending()


@router.post("/permissions/{request_id}/respond", response_model=OkResponse)
async def respond(
    request_id: str,
    payload: RespondPermissionRequest,
    _: None = Depends(require_token),
) -> OkResponse:
    """Answer a pending request; the blocked hook picks the answer up."""
    if not gateway.pending_exists(request_id):
        raise_http_error("NOT_FOUND", "Permission request not found", 404)
    if not gateway.respond(request_id, payload.decision, payload.message, payload.answers):
        raise_http_error("INTERNAL_ERROR", "Failed to write permission response", 500)
    return OkResponse()
