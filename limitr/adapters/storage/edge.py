"""Edge counter storage: Upstash REST and Cloudflare-KV-like namespaces.

- ``UpstashStorage`` sends the same Lua scripts as the Redis adapter, one
  REST call per operation, so increments stay atomic.
- ``KVStorage`` only has get/put/delete. Increments read the stored value,
  compute the next one and write it back. Concurrent increments on the same
  key can race and under-count; this is an accepted limitation of the
  backend, not something the adapter tries to hide.
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Callable, Protocol

import httpx

from limitr.adapters.storage.base import KEY_PREFIX, hash_key, reset_from_ttl
from limitr.adapters.storage.replies import extract_count_and_ttl
from limitr.adapters.storage.scripts import DECREMENT_SCRIPT, INCREMENT_SCRIPT
from limitr.core.errors import ErrorDetails, MalformedReplyAppError, StorageAppError
from limitr.schemas.options import UpstashConfig
from limitr.schemas.usage import RateLimitUsage

logger = logging.getLogger(__name__)


class UpstashStorage:
    """Counter storage on Upstash Redis through its REST API.

    Args:
        config: REST URL and token.
        client: Optional ``httpx.AsyncClient`` (kept open on close). One is
            created and owned by the adapter when omitted.
        clock: Time source function returning UNIX time in seconds.
    """

    def __init__(
        self,
        config: UpstashConfig,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._url = config.url.rstrip("/")
        self._headers = {"Content-Type": "application/json"}
        if config.token:
            self._headers["Authorization"] = f"Bearer {config.token}"

        if client is None:
            self._client = httpx.AsyncClient(timeout=config.timeout_seconds)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    async def _command(self, operation: str, key: str, command: list[str]) -> Any:
        details: ErrorDetails = {
            "storage": "upstash",
            "operation": operation,
            "key_hash": hash_key(key),
        }
        try:
            response = await self._client.post(self._url, headers=self._headers, json=command)
        except httpx.HTTPError as exc:
            logger.warning(
                "storage.upstash_error", extra={**details, "error_type": type(exc).__name__}
            )
            raise StorageAppError(
                code="storage_upstash_error",
                message=f"Upstash {operation} failed: {exc}",
                details=details,
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedReplyAppError(
                code="storage_upstash_invalid_json",
                message=f"Upstash {operation} returned a non-JSON body",
                details={**details, "http_status": response.status_code},
            ) from exc

        if response.is_error or (isinstance(body, dict) and body.get("error")):
            error = body.get("error") if isinstance(body, dict) else None
            logger.warning(
                "storage.upstash_error",
                extra={**details, "http_status": response.status_code},
            )
            raise StorageAppError(
                code="storage_upstash_error",
                message=f"Upstash {operation} failed: {error or response.status_code}",
                details={**details, "http_status": response.status_code},
            )
        return body

    async def increment(self, key: str, window_ms: int) -> RateLimitUsage:
        k = self._key(key)
        body = await self._command(
            "increment", key, ["EVAL", INCREMENT_SCRIPT, "1", k, str(int(window_ms))]
        )
        count, ttl_ms = extract_count_and_ttl(body)
        return RateLimitUsage.from_count(count, reset_from_ttl(self._clock(), ttl_ms, window_ms))

    async def decrement(self, key: str) -> None:
        await self._command("decrement", key, ["EVAL", DECREMENT_SCRIPT, "1", self._key(key)])

    async def reset(self, key: str) -> None:
        await self._command("reset", key, ["DEL", self._key(key)])

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_active_keys(self) -> list[str]:
        # The REST API has no stable key listing.
        return []


class KVNamespace(Protocol):
    """Async key-value namespace in the shape of a Cloudflare KV binding.

    ``list`` is optional; when present it returns ``{"keys": [{"name": ...}]}``.
    """

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


class KVStorage:
    """Best-effort counter storage on a get/put/delete namespace.

    Values are stored as ``{"count": n, "reset": epoch_seconds}`` with a
    seconds-based TTL, so a window keeps its original reset time across hits.

    Args:
        kv: Namespace object (caller-owned, never closed here).
        clock: Time source function returning UNIX time in seconds.
    """

    def __init__(self, kv: KVNamespace, *, clock: Callable[[], float] = time.time) -> None:
        self.kv = kv
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    def _failure(self, operation: str, key: str, exc: Exception) -> StorageAppError:
        details: ErrorDetails = {
            "storage": "kv",
            "operation": operation,
            "key_hash": hash_key(key),
        }
        logger.warning("storage.kv_error", extra={**details, "error_type": type(exc).__name__})
        return StorageAppError(
            code="storage_kv_error",
            message=f"KV {operation} failed: {exc}",
            details=details,
        )

    async def _read(self, operation: str, key: str) -> tuple[int, int] | None:
        try:
            raw = await self.kv.get(self._key(key))
        except Exception as exc:
            raise self._failure(operation, key, exc) from exc
        if raw is None:
            return None
        try:
            state = json.loads(raw)
            return int(state["count"]), int(state["reset"])
        except (ValueError, TypeError, KeyError) as exc:
            raise MalformedReplyAppError(
                code="storage_kv_invalid_value",
                message="KV counter value is not a valid counter record",
                details={"storage": "kv", "key_hash": hash_key(key)},
            ) from exc

    async def _write(self, operation: str, key: str, count: int, reset: int, now: float) -> None:
        ttl_seconds = max(1, math.ceil(reset - now))
        value = json.dumps({"count": count, "reset": reset})
        try:
            await self.kv.put(self._key(key), value, expiration_ttl=ttl_seconds)
        except Exception as exc:
            raise self._failure(operation, key, exc) from exc

    async def increment(self, key: str, window_ms: int) -> RateLimitUsage:
        now = self._clock()
        state = await self._read("increment", key)

        if state is None or now >= state[1]:
            count, reset = 1, int(now + math.ceil(window_ms / 1000))
        else:
            count, reset = state[0] + 1, state[1]

        await self._write("increment", key, count, reset, now)
        return RateLimitUsage.from_count(count, reset)

    async def decrement(self, key: str) -> None:
        now = self._clock()
        state = await self._read("decrement", key)
        if state is None or now >= state[1] or state[0] <= 0:
            return
        await self._write("decrement", key, state[0] - 1, state[1], now)

    async def reset(self, key: str) -> None:
        try:
            await self.kv.delete(self._key(key))
        except Exception as exc:
            raise self._failure("reset", key, exc) from exc

    async def close(self) -> None:
        return None

    async def get_active_keys(self) -> list[str]:
        list_keys = getattr(self.kv, "list", None)
        if list_keys is None:
            return []
        try:
            listing = await list_keys(prefix=KEY_PREFIX)
        except Exception as exc:
            raise self._failure("get_active_keys", KEY_PREFIX, exc) from exc
        return [entry["name"][len(KEY_PREFIX):] for entry in listing.get("keys", [])]
