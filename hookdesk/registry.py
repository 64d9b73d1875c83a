"""Session registry: persisted ordered session list and lifecycle state machine.

The list lives in the shared preference store and is mutated by short-lived
hook processes and by the daemon. Every mutation is a single read-modify-write
transaction, so concurrent hooks serialize instead of overwriting each other.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import RLock

import structlog
from pydantic import ValidationError

from hookdesk.models import TIMED_STATUSES, SessionRecord, SessionStatus, project_name
from hookdesk.preferences import (
    SEEN_SESSIONS_KEY,
    SESSIONS_KEY,
    PreferenceError,
    PreferenceStore,
    preferences,
)
from hookdesk.signals import SESSIONS_SIGNAL, broadcast

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_NAME = "Claude Session"


def _trim(value: str | None) -> str:
    return (value or "").strip()


def normalize_text(value: str | None) -> str | None:
    """Collapse all whitespace runs to single spaces; empty becomes None."""
    if not value:
        return None
    compact = " ".join(value.split())
    return compact or None


def _decode_records(raw: object) -> list[SessionRecord]:
    if not isinstance(raw, list):
        return []
    records: list[SessionRecord] = []
    for item in raw:
        try:
            records.append(SessionRecord.model_validate(item))
        except ValidationError:
            logger.debug("Skipping malformed session record", record=item)
    return records


def _encode_records(records: list[SessionRecord]) -> list[dict]:
    return [record.model_dump(mode="json") for record in records]


class SessionRegistry:
    """Ordered, persisted map of session id to :class:`SessionRecord`.

    Reads are served from an in-memory cache with an id -> index map. The
    daemon calls :meth:`invalidate` whenever another process signals a change.
    """

    def __init__(
        self,
        prefs: PreferenceStore | None = None,
        *,
        clock: Callable[[], float] = time.time,
        broadcaster: Callable[[str], None] = broadcast,
    ) -> None:
        self._prefs = prefs or preferences
        self._clock = clock
        self._broadcast = broadcaster
        self._lock = RLock()
        self._cache: list[SessionRecord] | None = None
        self._index: dict[str, int] = {}
        self._seen: set[str] | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> list[SessionRecord]:
        """Return all records in display order."""
        with self._lock:
            if self._cache is None:
                self._set_cache(_decode_records(self._prefs.get(SESSIONS_KEY, [])))
            return list(self._cache or [])

    def get(self, session_id: str | None) -> SessionRecord | None:
        sid = _trim(session_id)
        if not sid:
            return None
        with self._lock:
            self.load()
            index = self._index.get(sid)
            return self._cache[index] if index is not None and self._cache else None

    def invalidate(self) -> None:
        """Drop cached state so the next read goes to the store."""
        with self._lock:
            self._cache = None
            self._index = {}
            self._seen = None

    def _set_cache(self, records: list[SessionRecord]) -> None:
        self._cache = records
        self._index = {record.id: i for i, record in enumerate(records)}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _mutate(
        self, action: str, fn: Callable[[list[SessionRecord]], bool]
    ) -> bool:
        """Run ``fn`` over a fresh copy of the list inside one transaction.

        ``fn`` edits the list in place and returns whether anything changed.
        """

        def apply(raw: object) -> tuple[object, tuple[bool, list[SessionRecord]]]:
            records = _decode_records(raw)
            if not fn(records):
                return raw, (False, records)
            return _encode_records(records), (True, records)

        try:
            changed, records = self._prefs.update(SESSIONS_KEY, apply, default=[])
        except PreferenceError:
            logger.warning("Failed to persist session registry", action=action, exc_info=True)
            self.invalidate()
            return False
        with self._lock:
            self._set_cache(records)
        if changed:
            logger.debug("Session registry updated", action=action, count=len(records))
            self._broadcast(SESSIONS_SIGNAL)
        return changed

    def upsert_start(self, session_id: str | None, cwd: str | None) -> bool:
        """Register a session at the head of the list in ``idle`` state.

        A known session keeps its (possibly user-edited) name.
        """
        sid = _trim(session_id)
        if not sid:
            return False
        now = self._clock()

        def apply(records: list[SessionRecord]) -> bool:
            existing = next((r for r in records if r.id == sid), None)
            name = existing.name if existing else (project_name(cwd) or DEFAULT_SESSION_NAME)
            record = SessionRecord(
                id=sid,
                name=name,
                detail=cwd if cwd else f"session: {sid}",
                location=cwd,
                status=SessionStatus.IDLE,
                updated_at=now,
            )
            records[:] = [r for r in records if r.id != sid]
            records.insert(0, record)
            return True

        return self._mutate("upsert_start", apply)

    def update_status(
        self,
        session_id: str | None,
        status: SessionStatus,
        prompt: str | None = None,
        reorder: bool = True,
        reset_duration: bool = False,
    ) -> bool:
        """Move a session to ``status`` and account for running time.

        Args:
            session_id: Session to update; unknown ids are ignored.
            status: Target status.
            prompt: New prompt text, normalized to one line.
            reorder: Move the record to the head of its working-directory
                group; otherwise keep its position.
            reset_duration: Start a fresh timer (a new prompt) instead of
                resuming the accumulated one.
        """
        sid = _trim(session_id)
        if not sid:
            return False
        now = self._clock()

        def apply(records: list[SessionRecord]) -> bool:
            index = next((i for i, r in enumerate(records) if r.id == sid), None)
            if index is None:
                return False
            existing = records.pop(index)
            updated = _transition(existing, status, now, prompt, reset_duration)
            if reorder:
                insert_at = next(
                    (i for i, r in enumerate(records) if r.location == updated.location), 0
                )
            else:
                insert_at = min(index, len(records))
            records.insert(insert_at, updated)
            return True

        return self._mutate(f"status:{status.value}", apply)

    def update_archive_summary(
        self,
        session_id: str | None,
        last_prompt: str | None = None,
        last_response: str | None = None,
    ) -> bool:
        """Copy an archive summary into the record, keeping its position."""
        sid = _trim(session_id)
        if not sid:
            return False
        now = self._clock()

        def apply(records: list[SessionRecord]) -> bool:
            for i, record in enumerate(records):
                if record.id == sid:
                    records[i] = record.model_copy(
                        update={
                            "last_prompt": normalize_text(last_prompt) or record.last_prompt,
                            "last_response": normalize_text(last_response)
                            or record.last_response,
                            "updated_at": now,
                        }
                    )
                    return True
            return False

        return self._mutate("archive_summary", apply)

    def rename(self, session_id: str | None, new_label: str) -> bool:
        sid = _trim(session_id)
        label = _trim(new_label)
        if not sid or not label:
            return False

        def apply(records: list[SessionRecord]) -> bool:
            for i, record in enumerate(records):
                if record.id == sid:
                    records[i] = record.model_copy(update={"name": label})
                    return True
            return False

        return self._mutate("rename", apply)

    def delete(self, session_id: str | None) -> bool:
        """Remove a record and forget its seen flag."""
        sid = _trim(session_id)
        if not sid:
            return False

        def apply(records: list[SessionRecord]) -> bool:
            before = len(records)
            records[:] = [r for r in records if r.id != sid]
            return len(records) != before

        removed = self._mutate("delete", apply)
        self.mark_unseen(sid)
        return removed

    # ------------------------------------------------------------------
    # Seen tracking
    # ------------------------------------------------------------------

    def seen_ids(self) -> set[str]:
        with self._lock:
            if self._seen is None:
                raw = self._prefs.get(SEEN_SESSIONS_KEY, [])
                self._seen = {str(v) for v in raw} if isinstance(raw, list) else set()
            return set(self._seen)

    def _update_seen(self, session_id: str | None, add: bool) -> bool:
        sid = _trim(session_id)
        if not sid:
            return False

        def apply(raw: object) -> tuple[object, tuple[bool, set[str]]]:
            ids = {str(v) for v in raw} if isinstance(raw, list) else set()
            if (sid in ids) == add:
                return raw, (False, ids)
            if add:
                ids.add(sid)
            else:
                ids.discard(sid)
            return sorted(ids), (True, ids)

        try:
            changed, ids = self._prefs.update(SEEN_SESSIONS_KEY, apply, default=[])
        except PreferenceError:
            logger.warning("Failed to persist seen sessions", session_id=sid, exc_info=True)
            return False
        with self._lock:
            self._seen = ids
        if changed:
            self._broadcast(SESSIONS_SIGNAL)
        return changed

    def mark_seen(self, session_id: str | None) -> bool:
        return self._update_seen(session_id, add=True)

    def mark_unseen(self, session_id: str | None) -> bool:
        return self._update_seen(session_id, add=False)

    def is_seen(self, session_id: str | None) -> bool:
        sid = _trim(session_id)
        if not sid:
            return True
        return sid in self.seen_ids()

    def is_unseen(self, record: SessionRecord) -> bool:
        """A finished session the user has not looked at yet."""
        return record.status == SessionStatus.FINISHED and not self.is_seen(record.id)


def _transition(
    existing: SessionRecord,
    status: SessionStatus,
    now: float,
    prompt: str | None,
    reset_duration: bool,
) -> SessionRecord:
    """Apply the status change and its time accounting to one record."""
    started_at: float | None
    duration = existing.duration
    last_response = existing.last_response

    if status in TIMED_STATUSES:
        last_response = None
        if reset_duration:
            started_at = now
            duration = 0.0
        elif existing.status == SessionStatus.RUNNING:
            started_at = existing.started_at
        else:
            started_at = now
    else:
        if existing.started_at is not None:
            duration = (duration or 0.0) + max(0.0, now - existing.started_at)
        started_at = None

    return existing.model_copy(
        update={
            "status": status,
            "updated_at": now,
            "started_at": started_at,
            "duration": duration,
            "last_prompt": normalize_text(prompt) or existing.last_prompt,
            "last_response": last_response,
        }
    )


registry = SessionRegistry()
