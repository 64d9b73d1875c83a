"""Pydantic request/response models for API endpoints."""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from hookdesk.models import (
    PermissionDecision,
    SessionRecord,
    SessionStatus,
    TokenUsage,
    TranscriptEntry,
)
from hookdesk.presentation import presentation_for
from hookdesk.statistics import ProjectUsage, TotalStatistics

# --- Request Models ---


class RenameSessionRequest(BaseModel):
    """Request body for renaming a session."""

    name: str = Field(..., min_length=1, max_length=120)


class RespondPermissionRequest(BaseModel):
    """Request body for answering a pending permission request."""

    decision: PermissionDecision
    message: str | None = None
    answers: dict[str, str] | None = None


# --- Response Models ---


class OkResponse(BaseModel):
    """Simple success response."""

    ok: bool = True


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool
    version: str
    pending_permissions: int


class SessionResponse(BaseModel):
    """Session data returned by API endpoints."""

    id: str
    name: str
    detail: str
    location: str | None
    status: SessionStatus
    status_label: str
    status_tint: str
    updated_at: float
    started_at: float | None
    duration: float | None
    elapsed: float
    last_prompt: str | None
    last_response: str | None
    unseen: bool

    @classmethod
    def from_record(cls, record: SessionRecord, unseen: bool, now: float | None = None) -> SessionResponse:
        presentation = presentation_for(record.status)
        return cls(
            **record.model_dump(),
            status_label=presentation.label,
            status_tint=presentation.tint,
            elapsed=record.elapsed(now if now is not None else time.time()),
            unseen=unseen,
        )


class TranscriptEntryResponse(TranscriptEntry):
    """Transcript entry annotated with its place in the prompt cycle."""

    is_intermediate: bool = False
    cumulative_usage: TokenUsage | None = None


class TranscriptResponse(BaseModel):
    session_id: str
    archived_at: float
    last_prompt: str | None
    last_response: str | None
    total_usage: TokenUsage | None
    entries: list[TranscriptEntryResponse]


class ProjectUsageResponse(BaseModel):
    path: str
    name: str
    session_count: int
    total_input: int
    total_output: int
    cache_creation: int
    cache_read: int
    total_input_tokens: int
    total_tokens: int
    actual_usage: float

    @classmethod
    def from_usage(cls, usage: ProjectUsage) -> ProjectUsageResponse:
        return cls(
            path=usage.id,
            name=usage.name,
            session_count=usage.session_count,
            total_input=usage.total_input,
            total_output=usage.total_output,
            cache_creation=usage.cache_creation,
            cache_read=usage.cache_read,
            total_input_tokens=usage.total_input_tokens,
            total_tokens=usage.total_tokens,
            actual_usage=usage.actual_usage,
        )


class TotalStatisticsResponse(BaseModel):
    total_sessions: int
    total_projects: int
    total_input: int
    total_output: int
    cache_creation: int
    cache_read: int
    total_input_tokens: int
    total_tokens: int
    actual_usage: float
    cache_savings_rate: float

    @classmethod
    def from_totals(cls, totals: TotalStatistics) -> TotalStatisticsResponse:
        return cls(
            total_sessions=totals.total_sessions,
            total_projects=totals.total_projects,
            total_input=totals.total_input,
            total_output=totals.total_output,
            cache_creation=totals.cache_creation,
            cache_read=totals.cache_read,
            total_input_tokens=totals.total_input_tokens,
            total_tokens=totals.total_tokens,
            actual_usage=totals.actual_usage,
            cache_savings_rate=totals.cache_savings_rate,
        )


class StatisticsResponse(BaseModel):
    total: TotalStatisticsResponse
    projects: list[ProjectUsageResponse]
