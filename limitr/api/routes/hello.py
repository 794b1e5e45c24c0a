from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(tags=["Example"])


@router.get("/api/hello")
async def hello() -> dict:
    """Example endpoint protected by the rate limiting middleware.

    Returns:
        dict: Greeting plus the server time, so repeated calls are visible.
    """

    return {
        "message": "Hello from a rate limited endpoint",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
