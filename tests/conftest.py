"""Shared pytest fixtures for hookdesk tests."""

import os
from typing import AsyncGenerator, Callable

import httpx
import pytest

# Ensure the host machine's configuration does not affect test results.
for _key in [k for k in os.environ if k.startswith("HOOKDESK_")]:
    os.environ.pop(_key, None)

from hookdesk.main import app
from hookdesk.registry import SessionRegistry, registry

# Disable auth by setting empty token on app state
app.state.agent_token = ""


class FakeClock:
    """Manually advanced clock for duration accounting tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch) -> dict[str, str]:
    """Point state and data directories at a fresh temp tree for every test."""
    state_dir = tmp_path / "state"
    data_dir = tmp_path / "data"
    state_dir.mkdir()
    data_dir.mkdir()
    monkeypatch.setenv("HOOKDESK_STATE_DIR", str(state_dir))
    monkeypatch.setenv("HOOKDESK_DATA_DIR", str(data_dir))
    # Reset the db engine so it picks up the new state dir
    from hookdesk.db import init_db, reset_engine

    reset_engine()
    init_db()
    registry.invalidate()
    yield {"state": str(state_dir), "data": str(data_dir)}
    registry.invalidate()
    reset_engine()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signals() -> list[str]:
    """Names broadcast by components built with the ``broadcaster`` fixture."""
    return []


@pytest.fixture
def broadcaster(signals) -> Callable[[str], None]:
    return signals.append


@pytest.fixture
def session_registry(clock, broadcaster) -> SessionRegistry:
    return SessionRegistry(clock=clock, broadcaster=broadcaster)


@pytest.fixture
def write_transcript(tmp_path) -> Callable[..., str]:
    """Write JSON-lines transcript records and return the file path."""
    import json

    def _write(records: list, name: str = "transcript.jsonl") -> str:
        path = tmp_path / name
        with open(path, "w", encoding="utf-8") as f:
            for record in records:
                f.write(record if isinstance(record, str) else json.dumps(record))
                f.write("\n")
        return str(path)

    return _write


@pytest.fixture
async def api_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force the AnyIO pytest plugin to run tests under asyncio."""
    return "asyncio"
