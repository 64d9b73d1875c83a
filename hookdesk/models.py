"""Pydantic models for session records, permission IPC and transcripts."""

from __future__ import annotations

import os
import time
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _uuid() -> str:
    return str(uuid.uuid4())


def project_name(path: str | None) -> str | None:
    """Return the last path component of a working directory, if any."""
    if not path:
        return None
    name = os.path.basename(path.rstrip("/"))
    return name or None


# --- Sessions ---


class SessionStatus(str, Enum):
    """Lifecycle states for a tracked CLI session."""
    IDLE = "idle"
    RUNNING = "running"
    PERMISSION = "permission"
    FINISHED = "finished"
    ENDED = "ended"


# Statuses during which wall-clock time accumulates into duration.
TIMED_STATUSES = frozenset({SessionStatus.RUNNING})


class SessionRecord(BaseModel):
    """One tracked session as persisted in the registry."""

    id: str
    name: str
    detail: str
    location: str | None = None
    status: SessionStatus = SessionStatus.IDLE
    updated_at: float
    started_at: float | None = None
    duration: float | None = None
    last_prompt: str | None = None
    last_response: str | None = None

    def elapsed(self, now: float | None = None) -> float:
        """Accumulated running time including the interval in progress."""
        total = self.duration or 0.0
        if self.started_at is not None:
            total += (now if now is not None else time.time()) - self.started_at
        return total


# --- Permission IPC ---


class PermissionOption(BaseModel):
    """A selectable option inside a permission question."""
    label: str
    description: str | None = None


class PermissionQuestion(BaseModel):
    """A question attached to a permission request (AskUserQuestion and friends)."""
    header: str | None = None
    question: str | None = None
    multi_select: bool = False
    options: list[PermissionOption] = Field(default_factory=list)


class PermissionRequest(BaseModel):
    """A pending decision written by a hook for the daemon to answer."""

    id: str = Field(default_factory=_uuid)
    session_id: str
    session_name: str | None = None
    tool_name: str
    cwd: str | None = None
    created_at: float = Field(default_factory=time.time)
    questions: list[PermissionQuestion] | None = None

    @property
    def has_questions(self) -> bool:
        return bool(self.questions)


class PermissionDecision(str, Enum):
    """Decision behaviours understood by the coding CLI."""
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"  # defer to the CLI's own permission UI


class PermissionResponse(BaseModel):
    """The daemon's answer to a pending request."""

    request_id: str
    decision: PermissionDecision
    message: str | None = None
    answers: dict[str, str] | None = None  # question index -> chosen label
    responded_at: float = Field(default_factory=time.time)


# --- Transcripts ---


class TranscriptRole(str, Enum):
    """Speaker of a transcript entry."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> TranscriptRole:
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNKNOWN


class TokenUsage(BaseModel):
    """Token usage reported for one API request."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    @classmethod
    def zero(cls) -> TokenUsage:
        return cls(
            input_tokens=0,
            output_tokens=0,
            cache_creation_input_tokens=0,
            cache_read_input_tokens=0,
        )

    @property
    def total_input_tokens(self) -> int:
        """Input including cache writes and cache reads."""
        return (
            self.input_tokens
            + (self.cache_creation_input_tokens or 0)
            + (self.cache_read_input_tokens or 0)
        )

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.output_tokens

    @property
    def actual_usage(self) -> float:
        """Cost-weighted usage: cache writes count 1.25x, cache reads 0.1x."""
        return (
            self.input_tokens
            + (self.cache_creation_input_tokens or 0) * 1.25
            + (self.cache_read_input_tokens or 0) * 0.1
            + self.output_tokens
        )

    def adding(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_creation_input_tokens=(self.cache_creation_input_tokens or 0)
            + (other.cache_creation_input_tokens or 0),
            cache_read_input_tokens=(self.cache_read_input_tokens or 0)
            + (other.cache_read_input_tokens or 0),
        )


class TranscriptEntry(BaseModel):
    """One parsed line of a raw transcript log."""

    id: str = Field(default_factory=_uuid)
    role: TranscriptRole
    text: str
    created_at: float | None = None
    entry_type: str | None = None
    message_role: str | None = None
    is_meta: bool | None = None
    message_content_is_string: bool | None = None
    request_id: str | None = None  # shared by streamed chunks of one API call
    usage: TokenUsage | None = None


class SessionTranscript(BaseModel):
    """Archived transcript of one session."""

    session_id: str
    entries: list[TranscriptEntry] = Field(default_factory=list)
    archived_at: float = Field(default_factory=time.time)
    last_prompt: str | None = None
    last_response: str | None = None

    @property
    def total_usage(self) -> TokenUsage | None:
        """Whole-session usage, counting each request id once."""
        seen: set[str] = set()
        total: TokenUsage | None = None
        for entry in self.entries:
            if entry.usage is None:
                continue
            if entry.request_id:
                if entry.request_id in seen:
                    continue
                seen.add(entry.request_id)
            total = entry.usage if total is None else total.adding(entry.usage)
        if total is None:
            return None
        return TokenUsage(
            input_tokens=total.input_tokens,
            output_tokens=total.output_tokens,
            cache_creation_input_tokens=total.cache_creation_input_tokens or None,
            cache_read_input_tokens=total.cache_read_input_tokens or None,
        )


# --- Debug capture ---


class DebugLogEntry(BaseModel):
    """A raw hook payload captured for troubleshooting."""

    id: str = Field(default_factory=_uuid)
    timestamp: float = Field(default_factory=time.time)
    hook_name: str
    tool_name: str | None = None
    session_id: str | None = None
    cwd: str | None = None
    transcript_path: str | None = None
    prompt: str | None = None
    raw_payload: str


# --- Hook input ---


class HookToolOption(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str
    description: str | None = None


class HookToolQuestion(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    header: str | None = None
    question: str | None = None
    multi_select: bool | None = Field(default=None, alias="multiSelect")
    options: list[HookToolOption] | None = None


class HookToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    questions: list[HookToolQuestion] | None = None


class HookEvent(BaseModel):
    """A lifecycle event as delivered on a hook's stdin."""

    model_config = ConfigDict(extra="ignore")

    hook_event_name: str | None = None
    tool_name: str | None = None
    cwd: str | None = None
    session_id: str | None = None
    prompt: str | None = None
    transcript_path: str | None = None
    tool_input: HookToolInput | None = None

    def permission_questions(self) -> list[PermissionQuestion] | None:
        if self.tool_input is None or self.tool_input.questions is None:
            return None
        return [
            PermissionQuestion(
                header=q.header,
                question=q.question,
                multi_select=bool(q.multi_select),
                options=[
                    PermissionOption(label=o.label, description=o.description)
                    for o in (q.options or [])
                ],
            )
            for q in self.tool_input.questions
        ]


# --- API errors ---


class ErrorDetail(BaseModel):
    """Structured error payload for API responses."""
    code: str
    message: str
    details: dict | list | None


class ErrorResponse(BaseModel):
    """Envelope for API error responses."""
    error: ErrorDetail
