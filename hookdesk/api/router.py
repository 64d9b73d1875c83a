"""Composition of API routers."""

from __future__ import annotations

from fastapi import APIRouter

from hookdesk.api.debug import router as debug_router
from hookdesk.api.events import router as events_router
from hookdesk.api.health import router as health_router
from hookdesk.api.permissions import router as permissions_router
from hookdesk.api.sessions import router as sessions_router
from hookdesk.api.statistics import router as statistics_router

api_router = APIRouter(prefix="/api")
api_router.include_router(sessions_router)
api_router.include_router(permissions_router)
api_router.include_router(statistics_router)
api_router.include_router(debug_router)
api_router.include_router(health_router)
api_router.include_router(events_router)
