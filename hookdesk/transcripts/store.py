"""On-disk archive of session transcripts, one JSON file per session."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

import structlog
from pydantic import ValidationError

from hookdesk.fileio import atomic_write_text, read_json
from hookdesk.models import SessionTranscript
from hookdesk.settings import settings

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def hashed_filename(session_id: str) -> str:
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()


def legacy_filename(session_id: str) -> str:
    """Filename used by older archives: unsafe characters replaced by ``_``."""
    return _UNSAFE_CHARS.sub("_", session_id) or "session"


class ArchiveStore:
    """Archives live under ``<data_dir>/archives`` keyed by a session id hash."""

    def __init__(self, root: Path | None = None) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        if self._root is not None:
            return self._root
        return Path(settings.data_dir()) / "archives"

    def path_for(self, session_id: str) -> Path:
        return self.root / f"{hashed_filename(session_id)}.json"

    def legacy_path_for(self, session_id: str) -> Path:
        return self.root / f"{legacy_filename(session_id)}.json"

    def load(self, session_id: str) -> SessionTranscript | None:
        """Load an archive, migrating a legacy-named file when found."""
        transcript = self._read(self.path_for(session_id))
        if transcript is not None:
            return transcript
        legacy = self._read(self.legacy_path_for(session_id))
        if legacy is None:
            return None
        try:
            atomic_write_text(self.path_for(session_id), legacy.model_dump_json())
            logger.info("Migrated legacy transcript archive", session_id=session_id)
        except OSError:
            logger.warning("Failed to migrate legacy archive", session_id=session_id, exc_info=True)
        return legacy

    def save(self, transcript: SessionTranscript) -> bool:
        try:
            atomic_write_text(self.path_for(transcript.session_id), transcript.model_dump_json())
        except OSError:
            logger.warning(
                "Failed to save transcript archive",
                session_id=transcript.session_id,
                exc_info=True,
            )
            return False
        return True

    def delete(self, session_id: str) -> None:
        for path in (self.path_for(session_id), self.legacy_path_for(session_id)):
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Failed to delete transcript archive", path=str(path), exc_info=True)

    def archive_size(self, session_id: str) -> int:
        """Size in bytes of the stored archive, 0 when there is none."""
        for path in (self.path_for(session_id), self.legacy_path_for(session_id)):
            try:
                return path.stat().st_size
            except OSError:
                continue
        return 0

    @staticmethod
    def _read(path: Path) -> SessionTranscript | None:
        data = read_json(path)
        if data is None:
            return None
        try:
            return SessionTranscript.model_validate(data)
        except ValidationError:
            logger.debug("Ignoring malformed transcript archive", path=str(path))
            return None


archive_store = ArchiveStore()
