from __future__ import annotations

from limitr.api.routes.health import router as health_router
from limitr.api.routes.hello import router as hello_router
from limitr.api.routes.limits import router as limits_router

__all__ = ["health_router", "hello_router", "limits_router"]
