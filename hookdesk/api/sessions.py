"""Session registry and transcript endpoints."""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Depends, Query

from hookdesk.api.deps import require_token
from hookdesk.api.errors import raise_http_error
from hookdesk.api.schemas import (
    OkResponse,
    RenameSessionRequest,
    SessionResponse,
    TranscriptEntryResponse,
    TranscriptResponse,
)
from hookdesk.gateway import gateway
from hookdesk.models import SessionStatus
from hookdesk.registry import registry
from hookdesk.transcripts.grouper import build_cache, filtered_entries
from hookdesk.transcripts.store import archive_store

router = APIRouter(tags=["sessions"])
logger = structlog.get_logger(__name__)


def _response(session_id: str) -> SessionResponse:
    record = registry.get(session_id)
    if record is None:
        raise_http_error("NOT_FOUND", "Session not found", 404)
    return SessionResponse.from_record(record, unseen=registry.is_unseen(record))


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(_: None = Depends(require_token)) -> list[SessionResponse]:
    """List tracked sessions in display order."""
    now = time.time()
    seen = registry.seen_ids()
    return [
        SessionResponse.from_record(
            record,
            unseen=record.status == SessionStatus.FINISHED and record.id not in seen,
            now=now,
        )
        for record in registry.load()
    ]


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, _: None = Depends(require_token)) -> SessionResponse:
    return _response(session_id)


@router.patch("/sessions/{session_id}", response_model=SessionResponse)
async def rename_session(
    session_id: str,
    payload: RenameSessionRequest,
    _: None = Depends(require_token),
) -> SessionResponse:
    """Set a user-chosen label for a session."""
    if registry.get(session_id) is None:
        raise_http_error("NOT_FOUND", "Session not found", 404)
    if not payload.name.strip():
        raise_http_error("VALIDATION_ERROR", "Name must not be blank", 422)
    registry.rename(session_id, payload.name)
    return _response(session_id)


@router.delete("/sessions/{session_id}", response_model=OkResponse)
async def delete_session(session_id: str, _: None = Depends(require_token)) -> OkResponse:
    """Forget a session and its archive. Usage statistics are kept."""
    if registry.get(session_id) is None:
        raise_http_error("NOT_FOUND", "Session not found", 404)
    gateway.delete_pending_for_session(session_id)
    registry.delete(session_id)
    archive_store.delete(session_id)
    logger.info("Session deleted", session_id=session_id)
    return OkResponse()


@router.post("/sessions/{session_id}/seen", response_model=SessionResponse)
async def mark_seen(session_id: str, _: None = Depends(require_token)) -> SessionResponse:
    if registry.get(session_id) is None:
        raise_http_error("NOT_FOUND", "Session not found", 404)
    registry.mark_seen(session_id)
    return _response(session_id)


@router.get("/sessions/{session_id}/transcript", response_model=TranscriptResponse)
async def get_transcript(
    session_id: str,
    detail: bool = Query(False),
    _: None = Depends(require_token),
) -> TranscriptResponse:
    """Archived transcript, reduced to prompts and final answers unless detailed."""
    transcript = archive_store.load(session_id)
    if transcript is None:
        raise_http_error("NOT_FOUND", "Transcript not found", 404)
    cache = build_cache(transcript.entries)
    entries = [
        TranscriptEntryResponse(
            **entry.model_dump(),
            is_intermediate=cache.is_intermediate.get(entry.id, False),
            cumulative_usage=cache.cumulative_usage.get(entry.id),
        )
        for entry in filtered_entries(transcript.entries, show_detail=detail)
    ]
    return TranscriptResponse(
        session_id=transcript.session_id,
        archived_at=transcript.archived_at,
        last_prompt=transcript.last_prompt,
        last_response=transcript.last_response,
        total_usage=transcript.total_usage,
        entries=entries,
    )
