"""Redis-backed counter storage using atomic Lua scripts.

Increment and expiry run inside one server-evaluated script, so concurrent
hits on the same key are never lost. The window TTL is set only when the
key has none, which keeps an in-flight window from being extended.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from limitr.adapters.storage.base import KEY_PREFIX, hash_key, reset_from_ttl
from limitr.adapters.storage.replies import extract_count_and_ttl
from limitr.adapters.storage.scripts import DECREMENT_SCRIPT, INCREMENT_SCRIPT
from limitr.core.errors import ErrorDetails, StorageAppError
from limitr.schemas.options import RedisConfig
from limitr.schemas.usage import RateLimitUsage

logger = logging.getLogger(__name__)


def _create_client(config: RedisConfig) -> Redis:
    if config.url:
        return Redis.from_url(config.url)
    return Redis(
        host=config.host,
        port=config.port,
        password=config.password,
        db=config.db,
        ssl=config.tls,
    )


class RedisStorage:
    """Counter storage on a Redis server.

    Args:
        client_or_config: An async Redis client (kept open on close) or the
            settings used to create one (closed on close).
        clock: Time source function returning UNIX time in seconds.
    """

    def __init__(
        self,
        client_or_config: Redis | RedisConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if isinstance(client_or_config, RedisConfig):
            self.redis: Any = _create_client(client_or_config)
            self._owns_client = True
        else:
            self.redis = client_or_config
            self._owns_client = False

        self._clock = clock
        self._increment_script = self.redis.register_script(INCREMENT_SCRIPT)
        self._decrement_script = self.redis.register_script(DECREMENT_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    def _failure(self, operation: str, key: str | None, exc: Exception) -> StorageAppError:
        details: ErrorDetails = {"storage": "redis", "operation": operation}
        if key is not None:
            details["key_hash"] = hash_key(key)
        logger.warning("storage.redis_error", extra={**details, "error_type": type(exc).__name__})
        return StorageAppError(
            code="storage_redis_error",
            message=f"Redis {operation} failed: {exc}",
            details=details,
        )

    async def increment(self, key: str, window_ms: int) -> RateLimitUsage:
        try:
            reply = await self._increment_script(keys=[self._key(key)], args=[int(window_ms)])
        except RedisError as exc:
            raise self._failure("increment", key, exc) from exc

        count, ttl_ms = extract_count_and_ttl(reply)
        return RateLimitUsage.from_count(count, reset_from_ttl(self._clock(), ttl_ms, window_ms))

    async def decrement(self, key: str) -> None:
        try:
            await self._decrement_script(keys=[self._key(key)])
        except RedisError as exc:
            raise self._failure("decrement", key, exc) from exc

    async def reset(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except RedisError as exc:
            raise self._failure("reset", key, exc) from exc

    async def close(self) -> None:
        if self._owns_client:
            await self.redis.aclose()

    async def get_active_keys(self) -> list[str]:
        keys: list[str] = []
        try:
            async for raw in self.redis.scan_iter(match=f"{KEY_PREFIX}*"):
                name = raw.decode() if isinstance(raw, bytes) else str(raw)
                keys.append(name[len(KEY_PREFIX):])
        except RedisError as exc:
            raise self._failure("get_active_keys", None, exc) from exc
        return keys
