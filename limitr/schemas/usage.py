"""Usage record returned by every storage adapter."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any

# Storage adapters do not know the enforced limit; they report this sentinel.
UNBOUNDED_LIMIT = 2**53 - 1


class RateLimitStrategy(str, Enum):
    """Counting strategies accepted in configuration.

    Only fixed-window counting is implemented by the storage adapters.
    """

    FIXED_WINDOW = "fixed-window"
    SLIDING_WINDOW = "sliding-window"
    TOKEN_BUCKET = "token_bucket"


@dataclass(frozen=True)
class RateLimitUsage:
    """Counter state for one key after a storage operation.

    Attributes:
        used: Number of hits recorded in the current window.
        remaining: Hits left before ``limit`` is reached (never negative).
        reset: UNIX epoch seconds when the current window expires.
        limit: Maximum hits per window. ``UNBOUNDED_LIMIT`` at the storage layer.
    """

    used: int
    remaining: int
    reset: int
    limit: int = UNBOUNDED_LIMIT

    @classmethod
    def from_count(cls, used: int, reset: int) -> RateLimitUsage:
        """Build a storage-layer record for ``used`` hits expiring at ``reset``."""
        return cls(
            used=used,
            remaining=max(UNBOUNDED_LIMIT - used, 0),
            reset=reset,
            limit=UNBOUNDED_LIMIT,
        )

    def with_limit(self, limit: int) -> RateLimitUsage:
        """Return a copy carrying the enforced limit and its remaining budget."""
        return replace(self, limit=limit, remaining=max(0, limit - self.used))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
