"""Filesystem request/response channel for interactive permission decisions.

A blocking hook writes ``pending/<id>.json`` and polls for
``response/<id>.json``. The daemon lists pending requests, answers one by
writing its response and removing the pending file. Removing the pending file
without a response cancels the wait.
"""

from __future__ import annotations

import os
import re
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from hookdesk.fileio import atomic_write_text, read_json
from hookdesk.models import (
    PermissionDecision,
    PermissionQuestion,
    PermissionRequest,
    PermissionResponse,
    project_name,
)
from hookdesk.settings import settings
from hookdesk.signals import PERMISSIONS_SIGNAL, broadcast

logger = structlog.get_logger(__name__)

LEGACY_ALLOW_PAYLOAD: dict[str, Any] = {"allow": True}

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9-]+$")


def format_decision_payload(
    decision: PermissionDecision | str,
    message: str | None = None,
    answers: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build the JSON a hook prints to hand a decision back to the CLI."""
    behavior = PermissionDecision(decision).value
    body: dict[str, Any] = {"behavior": behavior}
    if behavior == PermissionDecision.DENY.value and message:
        body["message"] = message
    if answers:
        body["updatedInput"] = {"answers": dict(answers)}
    return {
        "hookSpecificOutput": {
            "hookEventName": "PermissionRequest",
            "decision": body,
        }
    }


def parent_alive_check() -> Callable[[], bool]:
    """Heartbeat that turns False once the spawning process has exited."""
    parent = os.getppid()
    return lambda: os.getppid() == parent


class PermissionGateway:
    """Pending/response directories under ``<state_dir>/permission``."""

    def __init__(
        self,
        root: Path | None = None,
        *,
        broadcaster: Callable[[str], None] = broadcast,
    ) -> None:
        self._root = root
        self._broadcast = broadcaster

    @property
    def root(self) -> Path:
        if self._root is not None:
            return self._root
        return Path(settings.state_dir()) / "permission"

    @property
    def pending_dir(self) -> Path:
        return self.root / "pending"

    @property
    def response_dir(self) -> Path:
        return self.root / "response"

    def _pending_path(self, request_id: str) -> Path | None:
        if not _REQUEST_ID_RE.match(request_id or ""):
            return None
        return self.pending_dir / f"{request_id}.json"

    def _response_path(self, request_id: str) -> Path | None:
        if not _REQUEST_ID_RE.match(request_id or ""):
            return None
        return self.response_dir / f"{request_id}.json"

    # ------------------------------------------------------------------
    # Hook side
    # ------------------------------------------------------------------

    def submit_request(
        self,
        session_id: str,
        tool_name: str | None,
        cwd: str | None,
        questions: list[PermissionQuestion] | None = None,
        session_name: str | None = None,
    ) -> str:
        """Write a pending request and return its id without waiting."""
        request = PermissionRequest(
            session_id=session_id,
            session_name=session_name or project_name(cwd),
            tool_name=tool_name or "Unknown",
            cwd=cwd,
            questions=questions or None,
        )
        path = self.pending_dir / f"{request.id}.json"
        try:
            atomic_write_text(path, request.model_dump_json(indent=2))
        except OSError:
            logger.warning(
                "Failed to write permission request",
                request_id=request.id,
                session_id=session_id,
                exc_info=True,
            )
        else:
            logger.info(
                "Permission request submitted",
                request_id=request.id,
                session_id=session_id,
                tool_name=request.tool_name,
            )
        self._broadcast(PERMISSIONS_SIGNAL)
        return request.id

    def wait_for_response(
        self,
        request_id: str,
        poll_interval: float | None = None,
        max_wait: float | None = None,
        is_alive: Callable[[], bool] | None = None,
    ) -> PermissionResponse | None:
        """Block until the request is answered, cancelled or abandoned.

        Args:
            request_id: Id returned by :meth:`submit_request`.
            poll_interval: Seconds between checks; defaults to the setting.
            max_wait: Give up after this many seconds; 0 waits indefinitely.
            is_alive: Heartbeat; returning False abandons the wait. Defaults
                to checking that the parent process still exists.

        Returns:
            The response, or None when the pending file disappeared without
            one or the wait was abandoned.
        """
        interval = poll_interval if poll_interval is not None else settings.permission_poll_interval()
        limit = max_wait if max_wait is not None else settings.permission_max_wait()
        alive = is_alive or parent_alive_check()
        deadline = time.monotonic() + limit if limit > 0 else None

        while True:
            response = self._take_response(request_id)
            if response is not None:
                return response
            if not self.pending_exists(request_id):
                # respond() writes the answer before removing the pending file.
                response = self._take_response(request_id)
                if response is None:
                    logger.info("Permission request cancelled", request_id=request_id)
                return response
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("Permission wait timed out", request_id=request_id, max_wait=limit)
                self.delete_pending(request_id)
                return None
            if not alive():
                logger.warning("Permission requester went away", request_id=request_id)
                self.delete_pending(request_id)
                return None
            time.sleep(interval)

    def _take_response(self, request_id: str) -> PermissionResponse | None:
        """Load and consume the response file, if one was written."""
        response = self.load_response(request_id)
        if response is None:
            return None
        self.delete_response(request_id)
        logger.info(
            "Permission response received",
            request_id=request_id,
            decision=response.decision.value,
        )
        return response

    # ------------------------------------------------------------------
    # Daemon side
    # ------------------------------------------------------------------

    def list_pending(self) -> list[PermissionRequest]:
        """Well-formed pending requests, newest first."""
        requests: list[PermissionRequest] = []
        try:
            paths = sorted(self.pending_dir.glob("*.json"))
        except OSError:
            return requests
        for path in paths:
            data = read_json(path)
            if data is None:
                logger.debug("Skipping unreadable permission request", path=str(path))
                continue
            try:
                requests.append(PermissionRequest.model_validate(data))
            except ValidationError:
                logger.debug("Skipping malformed permission request", path=str(path))
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests

    def pending_exists(self, request_id: str) -> bool:
        path = self._pending_path(request_id)
        return path is not None and path.exists()

    def load_response(self, request_id: str) -> PermissionResponse | None:
        path = self._response_path(request_id)
        if path is None:
            return None
        data = read_json(path)
        if data is None:
            return None
        try:
            return PermissionResponse.model_validate(data)
        except ValidationError:
            logger.debug("Ignoring malformed permission response", request_id=request_id)
            return None

    def respond(
        self,
        request_id: str,
        decision: PermissionDecision,
        message: str | None = None,
        answers: dict[str, str] | None = None,
    ) -> bool:
        """Answer a request. Returns whether the response file was written."""
        path = self._response_path(request_id)
        if path is None:
            return False
        response = PermissionResponse(
            request_id=request_id,
            decision=decision,
            message=message,
            answers=answers or None,
        )
        try:
            atomic_write_text(path, response.model_dump_json(indent=2))
        except OSError:
            logger.warning("Failed to write permission response", request_id=request_id, exc_info=True)
            return False
        self.delete_pending(request_id, notify=False)
        logger.info("Permission answered", request_id=request_id, decision=response.decision.value)
        self._broadcast(PERMISSIONS_SIGNAL)
        return True

    def delete_pending(self, request_id: str, *, notify: bool = True) -> bool:
        path = self._pending_path(request_id)
        if path is None:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError:
            logger.warning("Failed to remove permission request", request_id=request_id, exc_info=True)
            return False
        if notify:
            self._broadcast(PERMISSIONS_SIGNAL)
        return True

    def delete_pending_for_session(self, session_id: str | None) -> int:
        """Remove every pending request belonging to ``session_id``."""
        if not session_id:
            return 0
        removed = 0
        for request in self.list_pending():
            if request.session_id == session_id and self.delete_pending(request.id, notify=False):
                removed += 1
        if removed:
            logger.info("Cleared pending permissions", session_id=session_id, count=removed)
            self._broadcast(PERMISSIONS_SIGNAL)
        return removed

    def delete_response(self, request_id: str) -> None:
        path = self._response_path(request_id)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove permission response", request_id=request_id, exc_info=True)

    def cleanup_expired(self, timeout: float | None = None, now: float | None = None) -> int:
        """Remove stale pending and response files. Returns the number removed.

        Files that cannot be decoded are judged by their modification time.
        """
        limit = timeout if timeout is not None else settings.permission_expiry()
        current = now if now is not None else time.time()
        removed = 0
        for directory, field in ((self.pending_dir, "created_at"), (self.response_dir, "responded_at")):
            try:
                paths = list(directory.glob("*.json"))
            except OSError:
                continue
            for path in paths:
                data = read_json(path)
                stamp = data.get(field) if isinstance(data, dict) else None
                if not isinstance(stamp, (int, float)):
                    try:
                        stamp = path.stat().st_mtime
                    except OSError:
                        continue
                if current - stamp <= limit:
                    continue
                try:
                    path.unlink()
                    removed += 1
                except OSError:
                    logger.debug("Failed to remove expired permission file", path=str(path))
        if removed:
            logger.info("Removed expired permission files", count=removed)
            self._broadcast(PERMISSIONS_SIGNAL)
        return removed


gateway = PermissionGateway()
