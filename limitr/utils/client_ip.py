"""Best-effort client address lookup from proxy headers."""

from __future__ import annotations

from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> str:
    """Return the caller's address as reported by forwarding headers.

    Order: first ``X-Forwarded-For`` entry, ``X-Real-IP``, ``X-Client-IP``.
    Falls back to ``"unknown"`` when none is present.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return (
        request.headers.get("x-real-ip")
        or request.headers.get("x-client-ip")
        or UNKNOWN_CLIENT
    )
