"""Operator endpoints to inspect and clear rate limit counters.

Both routes require a valid X-API-Key header (see limitr.core.auth).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from limitr.adapters.storage.base import hash_key
from limitr.core.auth import verify_api_key
from limitr.core.pipeline import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/limits",
    tags=["Limits"],
    dependencies=[Depends(verify_api_key)],
)


def _limiter(request: Request) -> RateLimiter:
    return request.app.state.limiter


@router.get("/keys")
async def list_active_keys(request: Request) -> dict:
    """List counter keys the storage backend currently tracks.

    Backends that cannot enumerate keys (e.g. Upstash REST) return an empty list.
    """

    keys = await _limiter(request).storage.get_active_keys()
    return {"storage": _limiter(request).options.storage, "keys": keys}


@router.delete("/keys/{key:path}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_key(key: str, request: Request) -> None:
    """Clear the counter for ``key`` so its next request starts a new window.

    Raises:
        StorageAppError: Propagated to the exception handlers (HTTP 503).
    """

    await _limiter(request).storage.reset(key)
    logger.info("rate_limit.key_reset", extra={"key_hash": hash_key(key)})
