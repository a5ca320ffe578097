from __future__ import annotations

from throttler.api.routes.admin import router as admin_router
from throttler.api.routes.demo import router as demo_router
from throttler.api.routes.health import router as health_router

__all__ = ["admin_router", "demo_router", "health_router"]
