"""User notifications raised by hook events.

Delivery is pluggable. The default sink writes a structured log line; a
desktop integration can install its own sink with :func:`set_sink`.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from hookdesk.models import project_name
from hookdesk.settings import settings

logger = structlog.get_logger(__name__)

Sink = Callable[[str, str], None]


def notification_title(cwd: str | None) -> str:
    return f"Claude [{project_name(cwd) or 'Unknown'}]"


def _log_sink(title: str, message: str) -> None:
    logger.info("Notification", title=title, message=message)


class Notifier:
    def __init__(self, sink: Sink | None = None) -> None:
        self._sink = sink or _log_sink

    def set_sink(self, sink: Sink) -> None:
        self._sink = sink

    def notify(self, message: str, cwd: str | None = None, session_id: str | None = None) -> bool:
        """Deliver a notification unless notifications are turned off."""
        if not settings.notifications():
            return False
        try:
            self._sink(notification_title(cwd), message)
        except Exception:
            logger.exception("Notification sink failed", session_id=session_id)
            return False
        return True


notifier = Notifier()
