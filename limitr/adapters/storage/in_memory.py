"""In-memory fixed-window counter storage.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Expired windows are swept lazily at the start of every increment (O(n)).
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from limitr.schemas.usage import RateLimitUsage


@dataclass
class _WindowState:
    count: int
    reset_at: float


class MemoryStorage:
    """Counter storage backed by a dict owned by this process."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the in-memory storage.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def _sweep_expired(self, now: float) -> None:
        expired = [key for key, state in self._state_by_key.items() if now >= state.reset_at]
        for key in expired:
            del self._state_by_key[key]

    async def increment(self, key: str, window_ms: int) -> RateLimitUsage:
        now = self._clock()

        with self._lock:
            self._sweep_expired(now)

            state = self._state_by_key.get(key)
            if state is None:
                state = _WindowState(count=0, reset_at=now + window_ms / 1000)
                self._state_by_key[key] = state

            state.count += 1
            return RateLimitUsage.from_count(state.count, int(state.reset_at))

    async def decrement(self, key: str) -> None:
        with self._lock:
            state = self._state_by_key.get(key)
            if state is not None and state.count > 0:
                state.count -= 1

    async def reset(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    async def close(self) -> None:
        with self._lock:
            self._state_by_key.clear()

    async def get_active_keys(self) -> list[str]:
        now = self._clock()
        with self._lock:
            return [key for key, state in self._state_by_key.items() if now < state.reset_at]
