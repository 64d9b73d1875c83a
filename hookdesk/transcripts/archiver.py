"""Parse raw transcript logs and merge them into the session archive."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel

from hookdesk.models import (
    SessionTranscript,
    TokenUsage,
    TranscriptEntry,
    TranscriptRole,
)
from hookdesk.transcripts.store import ArchiveStore, archive_store

logger = structlog.get_logger(__name__)


class ArchiveSummary(BaseModel):
    """Last prompt/response of an archive and its de-duplicated usage."""

    last_prompt: str | None = None
    last_response: str | None = None
    usage: TokenUsage | None = None


def _string(value: Any) -> str | None:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _join_blocks(blocks: list) -> str | None:
    parts: list[str] = []
    for item in blocks:
        text = _string(item)
        if text is None and isinstance(item, dict):
            text = _string(item.get("text")) or _string(item.get("content"))
        if text is not None:
            parts.append(text)
    joined = " ".join(parts).strip()
    return joined or None


def _extract_text(record: dict) -> str | None:
    text = _string(record.get("content")) or _string(record.get("text"))
    if text:
        return text
    message = record.get("message")
    if isinstance(message, dict):
        text = _string(message.get("content")) or _string(message.get("text"))
        if text:
            return text
        if isinstance(message.get("content"), list):
            return _join_blocks(message["content"])
    if isinstance(record.get("content"), list):
        return _join_blocks(record["content"])
    return None


def _timestamp(value: Any) -> float | None:
    """Epoch seconds from a number, a numeric string or an ISO-8601 string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = _string(value)
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _usage(message: Any) -> TokenUsage | None:
    if not isinstance(message, dict) or not isinstance(message.get("usage"), dict):
        return None
    raw = message["usage"]

    def count(key: str) -> int | None:
        value = raw.get(key)
        return int(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None

    return TokenUsage(
        input_tokens=count("input_tokens") or 0,
        output_tokens=count("output_tokens") or 0,
        cache_creation_input_tokens=count("cache_creation_input_tokens"),
        cache_read_input_tokens=count("cache_read_input_tokens"),
    )


def build_entry(record: Any) -> TranscriptEntry | None:
    """Convert one decoded log line into an entry, or None if it has no text."""
    if not isinstance(record, dict):
        return None
    text = _extract_text(record)
    if not text:
        return None
    message = record.get("message") if isinstance(record.get("message"), dict) else None
    entry_type = _string(record.get("type"))
    message_role = _string(message.get("role")) if message else None
    is_meta = record.get("isMeta")
    return TranscriptEntry(
        role=TranscriptRole.parse(_string(record.get("role")) or entry_type or message_role),
        text=text,
        created_at=_timestamp(record.get("created_at")) or _timestamp(record.get("timestamp")),
        entry_type=entry_type,
        message_role=message_role,
        is_meta=is_meta if isinstance(is_meta, bool) else None,
        message_content_is_string=isinstance(message.get("content"), str) if message else False,
        request_id=_string(record.get("requestId")),
        usage=_usage(message),
    )


def parse_transcript(path: str | Path) -> list[TranscriptEntry]:
    """Parse a JSON-lines transcript. Undecodable or empty lines are skipped."""
    entries: list[TranscriptEntry] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                entry = build_entry(record)
                if entry is not None:
                    entries.append(entry)
    except (OSError, UnicodeDecodeError):
        logger.warning("Failed to read transcript", path=str(path), exc_info=True)
        return []
    return entries


def build_summary(entries: list[TranscriptEntry]) -> ArchiveSummary:
    last_prompt = next((e.text for e in reversed(entries) if e.role == TranscriptRole.USER), None)
    last_response = next(
        (e.text for e in reversed(entries) if e.role == TranscriptRole.ASSISTANT), None
    )
    return ArchiveSummary(last_prompt=last_prompt, last_response=last_response)


def _merge_key(entry: TranscriptEntry) -> str:
    stamp = repr(entry.created_at) if entry.created_at is not None else "nil"
    return f"{entry.role.value}|{stamp}|{entry.text}"


def merge_entries(
    existing: list[TranscriptEntry], new: list[TranscriptEntry]
) -> list[TranscriptEntry]:
    """Union of both lists, first occurrence wins, ordered by time.

    The sort is stable, so entries without a timestamp or sharing one keep
    their log order. A first archive is taken as parsed.
    """
    if not existing:
        return list(new)
    seen: set[str] = set()
    merged: list[TranscriptEntry] = []
    for entry in [*existing, *new]:
        key = _merge_key(entry)
        if key not in seen:
            seen.add(key)
            merged.append(entry)
    merged.sort(key=lambda e: e.created_at or 0.0)
    return merged


def archive_transcript(
    session_id: str | None,
    transcript_path: str | None,
    store: ArchiveStore | None = None,
) -> ArchiveSummary | None:
    """Merge the transcript at ``transcript_path`` into the session's archive.

    Returns:
        Summary of the merged archive, or None when there was nothing to
        archive (no id, no readable transcript, no entries).
    """
    sid = (session_id or "").strip()
    if not sid or not transcript_path:
        return None
    path = os.path.expanduser(transcript_path)
    if not os.path.isfile(path):
        logger.debug("Transcript not found", session_id=sid, path=path)
        return None
    entries = parse_transcript(path)
    if not entries:
        return None

    target = store or archive_store
    previous = target.load(sid)
    merged = merge_entries(previous.entries if previous else [], entries)
    summary = build_summary(merged)
    transcript = SessionTranscript(
        session_id=sid,
        entries=merged,
        last_prompt=summary.last_prompt,
        last_response=summary.last_response,
    )
    target.save(transcript)
    summary.usage = transcript.total_usage
    logger.debug("Transcript archived", session_id=sid, entries=len(merged))
    return summary
