"""Bounded ring of raw hook payloads kept for troubleshooting."""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from hookdesk.models import DebugLogEntry
from hookdesk.preferences import DEBUG_LOGS_KEY, PreferenceError, PreferenceStore, preferences

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ENTRIES = 200


class DebugLog:
    def __init__(self, prefs: PreferenceStore | None = None) -> None:
        self._prefs = prefs or preferences

    def append(self, entry: DebugLogEntry, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        """Add ``entry`` and keep only the newest ``max_entries``."""

        def apply(raw: object) -> tuple[list, None]:
            items = raw if isinstance(raw, list) else []
            items = [*items, entry.model_dump(mode="json")]
            return items[-max(1, max_entries):], None

        try:
            self._prefs.update(DEBUG_LOGS_KEY, apply, default=[])
        except PreferenceError:
            logger.warning("Failed to store debug log entry", hook_name=entry.hook_name, exc_info=True)

    def load(self) -> list[DebugLogEntry]:
        """Entries oldest first; malformed items are dropped."""
        raw = self._prefs.get(DEBUG_LOGS_KEY, [])
        entries: list[DebugLogEntry] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                entries.append(DebugLogEntry.model_validate(item))
            except ValidationError:
                continue
        return entries

    def clear(self) -> None:
        try:
            self._prefs.delete(DEBUG_LOGS_KEY)
        except PreferenceError:
            logger.warning("Failed to clear debug log", exc_info=True)


debug_log = DebugLog()
