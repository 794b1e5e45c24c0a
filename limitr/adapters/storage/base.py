"""Storage adapter interface.

The pipeline depends on this protocol (not on a concrete backend) so the
counter store can be swapped through configuration alone.
"""

from __future__ import annotations

import hashlib
from typing import Protocol, runtime_checkable

from limitr.schemas.usage import RateLimitUsage

KEY_PREFIX = "limitr:"


def hash_key(key: str) -> str:
    """Hash a counter key for logging without exposing client identity."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def reset_from_ttl(now: float, ttl_ms: float, window_ms: int) -> int:
    """Convert a remaining TTL into an absolute reset time in epoch seconds.

    A non-positive TTL (missing or persistent key) falls back to a full window.
    """
    effective_ttl = ttl_ms if ttl_ms > 0 else window_ms
    return int((now * 1000 + effective_ttl) // 1000)


@runtime_checkable
class StorageAdapter(Protocol):
    """Fixed-window counter contract shared by every backend."""

    async def increment(self, key: str, window_ms: int) -> RateLimitUsage:
        """Count one hit for ``key``, opening a new window if none is live.

        Args:
            key: Counter key (without the internal prefix).
            window_ms: Window length used when a new window starts.

        Returns:
            RateLimitUsage with the updated count and the window's reset time.

        Raises:
            StorageAppError: If the backend call fails or its reply is malformed.
        """
        ...

    async def decrement(self, key: str) -> None:
        """Remove one hit from ``key``, floored at zero. Never opens a window."""
        ...

    async def reset(self, key: str) -> None:
        """Delete the counter for ``key``."""
        ...

    async def close(self) -> None:
        """Release resources this adapter created. Caller-owned clients stay open."""
        ...

    async def get_active_keys(self) -> list[str]:
        """List tracked keys without the internal prefix (empty if unsupported)."""
        ...
