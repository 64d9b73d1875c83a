"""Background maintenance tasks for stale permission files."""

from __future__ import annotations

import asyncio

import structlog

from hookdesk.gateway import gateway
from hookdesk.settings import settings

logger = structlog.get_logger(__name__)

MAINTENANCE_INTERVAL_SECONDS = 300


async def maintenance_loop(interval_s: float = MAINTENANCE_INTERVAL_SECONDS) -> None:
    """Periodically remove expired permission requests and responses."""
    while True:
        try:
            gateway.cleanup_expired(settings.permission_expiry())
        except Exception:
            logger.exception("Maintenance loop failed")
        await asyncio.sleep(interval_s)
