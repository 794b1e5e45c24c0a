from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness endpoint for load balancers, exempt from rate limiting.

    Returns:
        dict: ``status`` plus the configured storage kind. The backend is
        not contacted, so a storage outage (where requests fail open) does
        not mark the service unhealthy.
    """

    limiter = getattr(request.app.state, "limiter", None)
    storage = limiter.options.storage if limiter is not None else None
    return {"status": "ok", "storage": storage}
