"""JSON preference store shared by hook processes and the daemon."""

from __future__ import annotations

import json
import time
from threading import RLock
from typing import Any, Callable, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from hookdesk.db import Preference, get_session

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SESSIONS_KEY = "session.list"
SEEN_SESSIONS_KEY = "session.seen"
DEBUG_LOGS_KEY = "debug.logs"


class PreferenceError(RuntimeError):
    """Raised when the preference store cannot be read or written."""


def _decode(raw: str | None, default: Any) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable preference value")
        return default


class PreferenceStore:
    """Typed-by-convention JSON values keyed by name.

    ``update`` is the only way to do read-modify-write: it runs the callback
    inside one exclusive transaction, so concurrent processes cannot interleave.
    """

    def __init__(self) -> None:
        self._lock = RLock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for ``key``, or ``default`` on any failure."""
        try:
            with self._lock, get_session() as db:
                row = db.get(Preference, key)
                return _decode(row.value if row else None, default)
        except SQLAlchemyError:
            logger.warning("Failed to read preference", key=key, exc_info=True)
            return default

    def set(self, key: str, value: Any) -> None:
        self.update(key, lambda _current: (value, None))

    def update(
        self,
        key: str,
        fn: Callable[[Any], tuple[Any, T]],
        default: Any = None,
    ) -> T:
        """Apply ``fn`` to the current value and persist what it returns.

        Args:
            key: Preference key.
            fn: Receives the current value (or ``default``) and returns a
                ``(new_value, result)`` pair. Returning the current object
                itself skips the write.
            default: Value passed to ``fn`` when the key is missing.

        Raises:
            PreferenceError: The transaction could not be completed.
        """
        try:
            with self._lock, get_session() as db:
                row = db.get(Preference, key)
                current = _decode(row.value if row else None, default)
                new_value, result = fn(current)
                if new_value is current:
                    db.rollback()
                    return result
                encoded = json.dumps(new_value, separators=(",", ":"))
                if row is None:
                    row = Preference(key=key, value=encoded)
                else:
                    row.value = encoded
                    row.updated_at = time.time()
                db.add(row)
                db.commit()
                return result
        except SQLAlchemyError as exc:
            raise PreferenceError(f"Failed to update preference {key!r}") from exc

    def delete(self, key: str) -> None:
        try:
            with self._lock, get_session() as db:
                row = db.get(Preference, key)
                if row is not None:
                    db.delete(row)
                db.commit()
        except SQLAlchemyError as exc:
            raise PreferenceError(f"Failed to delete preference {key!r}") from exc


preferences = PreferenceStore()
