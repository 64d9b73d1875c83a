"""Group transcript entries into prompt/response cycles.

A cycle starts at a message the user actually typed. Every assistant message
up to the next such prompt belongs to the cycle; only the last one is the
final answer, the rest are intermediate steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hookdesk.models import TokenUsage, TranscriptEntry, TranscriptRole

# Markers of tool plumbing and slash-command echoes stored as user messages.
_SYSTEM_MARKERS = (
    "<command-name>",
    "<command-message>",
    "<command-args>",
    "<local-command-stdout>",
    "<local-command-stderr>",
    "<local-command-caveat>",
    "<system-reminder>",
    "<function_results>",
    "tool_use_id",
    "tool_result",
)


@dataclass
class TranscriptEntryCache:
    """Per-entry flags precomputed for rendering a transcript."""

    is_intermediate: dict[str, bool] = field(default_factory=dict)
    cumulative_usage: dict[str, TokenUsage] = field(default_factory=dict)


def is_direct_user_input(entry: TranscriptEntry) -> bool:
    """Whether the entry is text the user typed, not tool or command output."""
    entry_type = (entry.entry_type or "").lower()
    message_role = (entry.message_role or "").lower()
    if entry_type and message_role:
        if entry_type != "user" or message_role != "user":
            return False
        if entry.is_meta is True or entry.message_content_is_string is not True:
            return False
    elif entry.role != TranscriptRole.USER:
        return False
    return not any(marker in entry.text for marker in _SYSTEM_MARKERS)


def _starts_group(entry: TranscriptEntry) -> bool:
    return entry.role == TranscriptRole.USER and is_direct_user_input(entry)


def find_final_assistant_ids(entries: list[TranscriptEntry]) -> set[str]:
    final: set[str] = set()
    last_assistant: str | None = None
    for entry in entries:
        if _starts_group(entry):
            if last_assistant is not None:
                final.add(last_assistant)
            last_assistant = None
        elif entry.role == TranscriptRole.ASSISTANT:
            last_assistant = entry.id
    if last_assistant is not None:
        final.add(last_assistant)
    return final


def filtered_entries(entries: list[TranscriptEntry], show_detail: bool) -> list[TranscriptEntry]:
    """All entries in detail mode, else typed prompts and final answers only."""
    if show_detail:
        return list(entries)
    final = find_final_assistant_ids(entries)
    return [
        entry
        for entry in entries
        if (entry.id in final if entry.role == TranscriptRole.ASSISTANT else is_direct_user_input(entry))
    ]


def is_intermediate_assistant(entry: TranscriptEntry, entries: list[TranscriptEntry]) -> bool:
    if entry.role != TranscriptRole.ASSISTANT:
        return False
    return entry.id not in find_final_assistant_ids(entries)


def build_cache(entries: list[TranscriptEntry]) -> TranscriptEntryCache:
    """Compute intermediate flags and per-cycle token totals in one pass.

    A cycle's usage counts each request id once (streamed chunks repeat it)
    and is attached to the cycle's final assistant entry only.
    """
    cache = TranscriptEntryCache()
    assistants: list[str] = []
    usage = TokenUsage.zero()
    request_ids: set[str] = set()

    def close_group() -> None:
        for i, entry_id in enumerate(assistants):
            is_final = i == len(assistants) - 1
            cache.is_intermediate[entry_id] = not is_final
            if is_final:
                cache.cumulative_usage[entry_id] = usage

    for entry in entries:
        if _starts_group(entry):
            close_group()
            assistants = []
            usage = TokenUsage.zero()
            request_ids = set()
            continue
        if entry.role != TranscriptRole.ASSISTANT:
            continue
        assistants.append(entry.id)
        if entry.usage is None:
            continue
        if entry.request_id:
            if entry.request_id in request_ids:
                continue
            request_ids.add(entry.request_id)
        usage = usage.adding(entry.usage)
    close_group()
    return cache
