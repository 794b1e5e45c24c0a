from __future__ import annotations

"""Application factory for the bundled FastAPI app.

Centralizes app construction (limiter, middleware, handlers, routers) so
tests can build isolated apps with their own limiter.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from limitr.api.routes import health_router, hello_router, limits_router
from limitr.core.config import settings
from limitr.core.exception_handlers import setup_exception_handlers
from limitr.core.logging import configure_logging
from limitr.core.middleware import request_id_middleware
from limitr.core.pipeline import RateLimiter


def create_app(limiter: RateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        limiter: Pre-built limiter; built from ``settings.rate_limit`` when omitted.

    Returns:
        Configured FastAPI app.

    Raises:
        ConfigurationAppError: If the configured storage backend lacks its settings.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    limiter = limiter or RateLimiter(settings.rate_limit.to_options())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await limiter.close()

    app = FastAPI(
        title="limitr",
        description=(
            "Example service protected by limitr: fixed-window rate limiting "
            "over memory, Redis, MongoDB, PostgreSQL or edge storage, with "
            "per-route overrides, webhook alerts and fail-open behaviour."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.limiter = limiter

    # Middleware: the last registered runs outermost, so request ids are
    # bound before the rate limiter logs anything.
    if settings.rate_limit.enabled:
        app.middleware("http")(limiter.dispatch)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(hello_router)
    app.include_router(limits_router)

    return app
