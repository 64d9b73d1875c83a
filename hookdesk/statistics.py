"""Token usage statistics that outlive the sessions they were recorded for.

Per-session records hold the latest cumulative usage (overwritten on every
Stop). Daily per-project records accumulate the delta since the last record,
so re-archiving the same transcript never double counts.
"""

from __future__ import annotations

import time
from datetime import date as date_cls
from pathlib import Path

import structlog
from filelock import FileLock, Timeout
from pydantic import BaseModel, Field, ValidationError

from hookdesk.fileio import atomic_write_text, read_json
from hookdesk.models import TokenUsage, project_name
from hookdesk.settings import settings

logger = structlog.get_logger(__name__)

STATISTICS_FILENAME = "statistics.json"
LOCK_TIMEOUT_SECONDS = 10


class _Counts(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
            + self.output_tokens
        )

    def set_usage(self, usage: TokenUsage) -> None:
        self.input_tokens = usage.input_tokens
        self.output_tokens = usage.output_tokens
        self.cache_creation_tokens = usage.cache_creation_input_tokens or 0
        self.cache_read_tokens = usage.cache_read_input_tokens or 0

    def add_usage(self, usage: TokenUsage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.cache_creation_tokens += usage.cache_creation_input_tokens or 0
        self.cache_read_tokens += usage.cache_read_input_tokens or 0


class SessionUsageRecord(_Counts):
    """Latest cumulative usage of one session."""

    id: str
    project_path: str
    project_name: str
    created_at: float = Field(default_factory=time.time)
    last_updated_at: float = Field(default_factory=time.time)


class DailyProjectUsage(_Counts):
    """Usage accumulated by one project on one local calendar day."""

    date: str
    project_path: str
    project_name: str

    @property
    def id(self) -> str:
        return f"{self.date}|{self.project_path}"


class SessionLastUsage(_Counts):
    """Usage seen at a session's previous record, for delta computation."""

    session_id: str

    def delta(self, usage: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=usage.input_tokens - self.input_tokens,
            output_tokens=usage.output_tokens - self.output_tokens,
            cache_creation_input_tokens=(usage.cache_creation_input_tokens or 0)
            - self.cache_creation_tokens,
            cache_read_input_tokens=(usage.cache_read_input_tokens or 0) - self.cache_read_tokens,
        )


class StatisticsData(BaseModel):
    sessions: list[SessionUsageRecord] = Field(default_factory=list)
    daily: list[DailyProjectUsage] = Field(default_factory=list)
    last_usages: list[SessionLastUsage] = Field(default_factory=list)


class _Aggregate(BaseModel):
    total_input: int = 0
    total_output: int = 0
    cache_creation: int = 0
    cache_read: int = 0

    @property
    def total_input_tokens(self) -> int:
        return self.total_input + self.cache_creation + self.cache_read

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output

    @property
    def actual_usage(self) -> float:
        return (
            self.total_input
            + self.cache_creation * 1.25
            + self.cache_read * 0.1
            + self.total_output
        )

    def add(self, record: SessionUsageRecord) -> None:
        self.total_input += record.input_tokens
        self.total_output += record.output_tokens
        self.cache_creation += record.cache_creation_tokens
        self.cache_read += record.cache_read_tokens


class ProjectUsage(_Aggregate):
    id: str  # project path
    name: str
    session_count: int = 0


class TotalStatistics(_Aggregate):
    total_sessions: int = 0
    total_projects: int = 0

    @property
    def cache_savings_rate(self) -> float:
        """Percent of input cost saved by caching, relative to uncached input."""
        base = self.total_input_tokens
        if base <= 0:
            return 0.0
        actual = self.total_input + self.cache_creation * 1.25 + self.cache_read * 0.1
        return (base - actual) / base * 100


class StatisticsStore:
    """``<data_dir>/statistics.json`` guarded by a sibling ``.lock`` file."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        if self._path is not None:
            return self._path
        return Path(settings.data_dir()) / STATISTICS_FILENAME

    def _lock(self) -> FileLock:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(str(self.path) + ".lock", timeout=LOCK_TIMEOUT_SECONDS)

    def _load(self) -> StatisticsData:
        data = read_json(self.path)
        if data is None:
            return StatisticsData()
        try:
            return StatisticsData.model_validate(data)
        except ValidationError:
            logger.warning("Discarding unreadable statistics file", path=str(self.path))
            return StatisticsData()

    def _save(self, data: StatisticsData) -> None:
        atomic_write_text(self.path, data.model_dump_json(indent=2))

    def record(
        self,
        session_id: str,
        project_path: str,
        usage: TokenUsage,
        today: str | None = None,
    ) -> bool:
        """Store a session's cumulative usage and add its growth to today."""
        day = today or date_cls.today().isoformat()
        name = project_name(project_path) or project_path
        try:
            with self._lock():
                data = self._load()

                session = next((s for s in data.sessions if s.id == session_id), None)
                if session is None:
                    session = SessionUsageRecord(
                        id=session_id, project_path=project_path, project_name=name
                    )
                    data.sessions.append(session)
                session.set_usage(usage)
                session.last_updated_at = time.time()

                last = next((u for u in data.last_usages if u.session_id == session_id), None)
                if last is None:
                    delta = usage
                    last = SessionLastUsage(session_id=session_id)
                    data.last_usages.append(last)
                else:
                    delta = last.delta(usage)
                last.set_usage(usage)

                daily = next(
                    (d for d in data.daily if d.date == day and d.project_path == project_path),
                    None,
                )
                if daily is None:
                    daily = DailyProjectUsage(date=day, project_path=project_path, project_name=name)
                    data.daily.append(daily)
                daily.add_usage(delta)

                self._save(data)
        except (OSError, Timeout):
            logger.warning("Failed to record statistics", session_id=session_id, exc_info=True)
            return False
        logger.debug(
            "Statistics recorded",
            session_id=session_id,
            project=name,
            total_tokens=usage.total_tokens,
        )
        return True

    def load_all_sessions(self) -> list[SessionUsageRecord]:
        return self._load().sessions

    def load_all_daily(self) -> list[DailyProjectUsage]:
        return self._load().daily

    def load_session(self, session_id: str) -> SessionUsageRecord | None:
        return next((s for s in self._load().sessions if s.id == session_id), None)

    def load_daily(
        self, date: str | None = None, project_path: str | None = None
    ) -> list[DailyProjectUsage]:
        """Daily records filtered by date and/or project path."""
        return [
            d
            for d in self._load().daily
            if (date is None or d.date == date)
            and (project_path is None or d.project_path == project_path)
        ]

    def delete_session(self, session_id: str) -> None:
        """Forget a session's record; daily totals are kept."""
        try:
            with self._lock():
                data = self._load()
                data.sessions = [s for s in data.sessions if s.id != session_id]
                data.last_usages = [u for u in data.last_usages if u.session_id != session_id]
                self._save(data)
        except (OSError, Timeout):
            logger.warning("Failed to delete session statistics", session_id=session_id, exc_info=True)

    def delete_all(self) -> None:
        try:
            with self._lock():
                self.path.unlink(missing_ok=True)
        except (OSError, Timeout):
            logger.warning("Failed to delete statistics", exc_info=True)

    def calculate_statistics(self) -> tuple[TotalStatistics, list[ProjectUsage]]:
        """Totals over all session records plus per-project breakdown.

        Projects are sorted by total tokens, largest first.
        """
        records = self.load_all_sessions()
        total = TotalStatistics(total_sessions=len(records))
        projects: dict[str, ProjectUsage] = {}
        for record in records:
            total.add(record)
            project = projects.get(record.project_path)
            if project is None:
                project = ProjectUsage(id=record.project_path, name=record.project_name)
                projects[record.project_path] = project
            project.session_count += 1
            project.add(record)
        total.total_projects = len(projects)
        ordered = sorted(projects.values(), key=lambda p: p.total_tokens, reverse=True)
        return total, ordered


statistics_store = StatisticsStore()
