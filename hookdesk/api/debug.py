"""Captured hook payloads for troubleshooting."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from hookdesk.api.deps import require_token
from hookdesk.api.schemas import OkResponse
from hookdesk.debug_log import debug_log
from hookdesk.models import DebugLogEntry

router = APIRouter(tags=["debug"])
logger = structlog.get_logger("hookdesk.api.debug")


@router.get("/debug/logs", response_model=list[DebugLogEntry])
async def list_logs(_: None = Depends(require_token)) -> list[DebugLogEntry]:
    """Captured payloads, newest first."""
    return list(reversed(debug_log.load()))


@router.delete("/debug/logs", response_model=OkResponse)
async def clear_logs(_: None = Depends(require_token)) -> OkResponse:
    debug_log.clear()
    logger.warning("Cleared debug log")
    return OkResponse()
