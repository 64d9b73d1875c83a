"""Entry point for hook subprocesses spawned by the coding CLI.

One process handles exactly one lifecycle event read from stdin. Anything
written to stdout is interpreted by the CLI, so only protocol JSON goes there;
logs go to stderr.
"""

from __future__ import annotations

import json
from typing import IO, Any

import structlog
from pydantic import ValidationError

from hookdesk.debug_log import DebugLog, debug_log
from hookdesk.gateway import (
    LEGACY_ALLOW_PAYLOAD,
    PermissionGateway,
    format_decision_payload,
    gateway,
)
from hookdesk.models import DebugLogEntry, HookEvent, SessionStatus
from hookdesk.notifier import Notifier, notifier
from hookdesk.registry import SessionRegistry, registry
from hookdesk.settings import settings
from hookdesk.signals import SESSIONS_SIGNAL, broadcast
from hookdesk.statistics import StatisticsStore, statistics_store
from hookdesk.transcripts.archiver import ArchiveSummary, archive_transcript
from hookdesk.transcripts.store import ArchiveStore, archive_store

logger = structlog.get_logger(__name__)


def decode_event(raw: str) -> HookEvent | None:
    """Decode a hook payload; None when it is not a JSON object we understand."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return HookEvent.model_validate(data)
    except ValidationError:
        pass
    # Tool input shapes vary per tool; keep the event even if it is odd.
    data.pop("tool_input", None)
    try:
        return HookEvent.model_validate(data)
    except ValidationError:
        return None


class HookEventProcessor:
    """Applies one hook event to the registry, gateway and archives."""

    def __init__(
        self,
        sessions: SessionRegistry | None = None,
        permissions: PermissionGateway | None = None,
        archives: ArchiveStore | None = None,
        statistics: StatisticsStore | None = None,
        notifications: Notifier | None = None,
        debug: DebugLog | None = None,
    ) -> None:
        self.sessions = sessions or registry
        self.permissions = permissions or gateway
        self.archives = archives or archive_store
        self.statistics = statistics or statistics_store
        self.notifier = notifications or notifier
        self.debug_log = debug or debug_log
        self._handlers = {
            "SessionStart": self.handle_session_start,
            "UserPromptSubmit": self.handle_user_prompt_submit,
            "PreToolUse": self.handle_pre_tool_use,
            "PermissionRequest": self.handle_permission_request,
            "PostToolUse": self.handle_post_tool_use,
            "Stop": self.handle_stop,
            "SessionEnd": self.handle_session_end,
        }

    def run(self, stdin: IO[str], stdout: IO[str]) -> None:
        """Process the event on ``stdin``. Never raises."""
        try:
            raw = stdin.read()
        except (OSError, UnicodeDecodeError):
            logger.warning("Failed to read hook input", exc_info=True)
            return
        if not raw.strip():
            return
        event = decode_event(raw)
        if event is None:
            logger.debug("Ignoring undecodable hook input")
            return

        with structlog.contextvars.bound_contextvars(
            hook_event=event.hook_event_name, session_id=event.session_id
        ):
            try:
                if settings.debug():
                    self._capture(event, raw)
                handler = self._handlers.get(event.hook_event_name or "")
                if handler is not None:
                    handler(event, stdout)
                else:
                    logger.debug("Unhandled hook event")
            except Exception:
                logger.exception("Hook event processing failed")
            finally:
                broadcast(SESSIONS_SIGNAL)

    def _capture(self, event: HookEvent, raw: str) -> None:
        self.debug_log.append(
            DebugLogEntry(
                hook_name=event.hook_event_name or "Unknown",
                tool_name=event.tool_name,
                session_id=event.session_id,
                cwd=event.cwd,
                transcript_path=event.transcript_path,
                prompt=event.prompt,
                raw_payload=raw,
            ),
            max_entries=settings.debug_log_limit(),
        )

    @staticmethod
    def _write(stdout: IO[str], payload: dict[str, Any]) -> None:
        stdout.write(json.dumps(payload, ensure_ascii=False))
        stdout.flush()

    def _notify(self, event: HookEvent, message: str) -> None:
        self.notifier.notify(message, cwd=event.cwd, session_id=event.session_id)

    def _archive(self, event: HookEvent) -> ArchiveSummary | None:
        summary = archive_transcript(event.session_id, event.transcript_path, store=self.archives)
        if summary is not None:
            self.sessions.update_archive_summary(
                event.session_id, summary.last_prompt, summary.last_response
            )
        return summary

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def handle_session_start(self, event: HookEvent, stdout: IO[str]) -> None:
        self.sessions.upsert_start(event.session_id, event.cwd)
        summary = archive_transcript(event.session_id, event.transcript_path, store=self.archives)
        if summary is not None:
            # Resumed session with history: show it as finished.
            self.sessions.update_status(event.session_id, SessionStatus.FINISHED)
            self.sessions.update_archive_summary(
                event.session_id, summary.last_prompt, summary.last_response
            )

    def handle_user_prompt_submit(self, event: HookEvent, stdout: IO[str]) -> None:
        self.sessions.mark_unseen(event.session_id)
        self.sessions.update_status(
            event.session_id,
            SessionStatus.RUNNING,
            prompt=event.prompt,
            reset_duration=True,
        )

    def handle_pre_tool_use(self, event: HookEvent, stdout: IO[str]) -> None:
        tool_name = event.tool_name or "Unknown"
        if settings.notify_pre_tool_use() and self._tool_selected(tool_name):
            self._notify(event, f"Tool: {tool_name}")
        self._write(stdout, LEGACY_ALLOW_PAYLOAD)

    @staticmethod
    def _tool_selected(tool_name: str) -> bool:
        tools = settings.pre_tool_use_tools()
        return not tools or tool_name in tools

    def handle_permission_request(self, event: HookEvent, stdout: IO[str]) -> None:
        self.sessions.update_status(event.session_id, SessionStatus.PERMISSION)
        tool_name = event.tool_name or "Unknown"

        if not settings.interactive_permission():
            if settings.notify_permission():
                self._notify(event, f"⚠️ Permission request: {tool_name}")
            return

        questions = event.permission_questions()
        request_id = self.permissions.submit_request(
            session_id=event.session_id or "",
            tool_name=event.tool_name,
            cwd=event.cwd,
            questions=questions,
        )
        if settings.notify_permission():
            suffix = " (has options)" if questions else ""
            self._notify(event, f"⚠️ Permission request: {tool_name}{suffix}")

        response = self.permissions.wait_for_response(request_id)
        if response is None:
            # Handled elsewhere; the CLI falls back to its own prompt.
            self.sessions.update_status(event.session_id, SessionStatus.RUNNING)
            return
        self._write(
            stdout,
            format_decision_payload(response.decision, response.message, response.answers),
        )

    def handle_post_tool_use(self, event: HookEvent, stdout: IO[str]) -> None:
        self.sessions.update_status(event.session_id, SessionStatus.RUNNING)
        # A tool ran, so any request for this session was answered in the
        # terminal. Heuristic: a parallel request of the same session is
        # cleared too.
        self.permissions.delete_pending_for_session(event.session_id)

    def handle_stop(self, event: HookEvent, stdout: IO[str]) -> None:
        self.sessions.update_status(event.session_id, SessionStatus.FINISHED)
        summary = self._archive(event)
        if summary is not None and summary.usage is not None and event.session_id and event.cwd:
            self.statistics.record(event.session_id.strip(), event.cwd, summary.usage)
        if settings.notify_stop():
            self._notify(event, "✅ Response complete.")

    def handle_session_end(self, event: HookEvent, stdout: IO[str]) -> None:
        session_id = (event.session_id or "").strip()
        if not session_id:
            return
        self.permissions.delete_pending_for_session(session_id)
        record = self.sessions.get(session_id)
        if record is None:
            return
        # Sessions that never received a prompt leave no card behind.
        if record.last_prompt is None:
            self.sessions.delete(session_id)
        else:
            self.sessions.update_status(session_id, SessionStatus.ENDED)
