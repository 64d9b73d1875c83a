"""FastAPI application entrypoint for the daemon."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress

import structlog
import uvicorn
from fastapi import FastAPI

from hookdesk import middleware
from hookdesk.api import api_router
from hookdesk.db import init_db
from hookdesk.gateway import gateway
from hookdesk.log_config import configure_logging
from hookdesk.maintenance import maintenance_loop
from hookdesk.registry import registry
from hookdesk.settings import settings
from hookdesk.signals import SESSIONS_SIGNAL, SignalWatcher
from hookdesk.sse import broker

configure_logging()
logger = structlog.get_logger(__name__)


def on_signals(changed: set[str]) -> None:
    """Refresh cached state and tell connected clients what changed."""
    if SESSIONS_SIGNAL in changed:
        registry.invalidate()
    for name in sorted(changed):
        broker.publish({"type": name})


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.agent_token = settings.token()
    init_db()
    gateway.cleanup_expired(settings.permission_expiry())

    watcher = SignalWatcher()
    watcher.add_listener(on_signals)
    tasks = [
        asyncio.create_task(watcher.run()),
        asyncio.create_task(maintenance_loop()),
    ]
    logger.info("Daemon started", host=settings.host(), port=settings.port())
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task


app = FastAPI(title="hookdesk", lifespan=lifespan)

middleware.install(app)

app.include_router(api_router)


def run() -> None:
    """Serve the daemon with uvicorn."""
    app.state.agent_token = settings.token()
    uvicorn.run(
        "hookdesk.main:app",
        host=settings.host(),
        port=settings.port(),
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    run()
else:
    app.state.agent_token = settings.token()
