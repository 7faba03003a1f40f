from __future__ import annotations

from skycache.api.routes.admin import router as admin_router
from skycache.api.routes.artifacts import router as artifacts_router
from skycache.api.routes.health import router as health_router

__all__ = ["admin_router", "artifacts_router", "health_router"]
