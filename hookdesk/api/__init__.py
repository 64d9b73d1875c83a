"""API package for the session and permission daemon."""

from __future__ import annotations

from hookdesk.api.deps import require_token
from hookdesk.api.router import api_router

__all__ = ["api_router", "require_token"]
