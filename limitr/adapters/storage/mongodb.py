"""MongoDB-backed counter storage.

Each increment is one ``find_one_and_update`` upsert whose aggregation
pipeline increments a live window, or restarts the count at 1 with a new
``expireAt`` when the document is new or its stored expiry has passed. The
count and the expiry are read from that same result document.

A TTL index on ``expireAt`` lets MongoDB delete stale documents in the
background. That sweep runs roughly once a minute, so logical expiry is
always decided from the stored field, never from the document's presence.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from limitr.adapters.storage.base import KEY_PREFIX, hash_key
from limitr.core.errors import ErrorDetails, MalformedReplyAppError, StorageAppError
from limitr.schemas.options import MongoConfig
from limitr.schemas.usage import RateLimitUsage

logger = logging.getLogger(__name__)

DEFAULT_DB = "limitr"
DEFAULT_COLLECTION = "rate_limits"


def _as_utc(value: datetime) -> datetime:
    # pymongo returns naive datetimes (in UTC) unless the client is tz_aware.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MongoStorage:
    """Counter storage in a MongoDB collection.

    Args:
        client_or_config: An async MongoDB client (kept open on close) or the
            settings used to create one (closed on close).
        db: Database name override for caller-supplied clients.
        collection: Collection name override for caller-supplied clients.
        clock: Time source function returning UNIX time in seconds.
    """

    def __init__(
        self,
        client_or_config: AsyncMongoClient | MongoConfig,
        *,
        db: str | None = None,
        collection: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if isinstance(client_or_config, MongoConfig):
            uri = client_or_config.uri or (
                f"mongodb://{client_or_config.host}:{client_or_config.port}"
            )
            self.client: Any = AsyncMongoClient(uri, **client_or_config.options)
            self._owns_client = True
            self._db_name = db or client_or_config.db
            self._collection_name = collection or client_or_config.collection
        else:
            self.client = client_or_config
            self._owns_client = False
            self._db_name = db or DEFAULT_DB
            self._collection_name = collection or DEFAULT_COLLECTION

        self._clock = clock
        self._collection: Any = None
        self._collection_lock = asyncio.Lock()

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    def _failure(self, operation: str, key: str | None, exc: Exception) -> StorageAppError:
        details: ErrorDetails = {"storage": "mongodb", "operation": operation}
        if key is not None:
            details["key_hash"] = hash_key(key)
        logger.warning("storage.mongodb_error", extra={**details, "error_type": type(exc).__name__})
        return StorageAppError(
            code="storage_mongodb_error",
            message=f"MongoDB {operation} failed: {exc}",
            details=details,
        )

    async def _get_collection(self) -> Any:
        if self._collection is not None:
            return self._collection

        async with self._collection_lock:
            if self._collection is not None:
                return self._collection

            collection = self.client[self._db_name][self._collection_name]
            try:
                await collection.create_index("expireAt", expireAfterSeconds=0)
            except PyMongoError as exc:
                # Housekeeping only; logical expiry does not depend on it.
                logger.warning(
                    "storage.mongodb_ttl_index_failed",
                    extra={
                        "collection": self._collection_name,
                        "error_type": type(exc).__name__,
                    },
                )
            self._collection = collection
            return collection

    async def increment(self, key: str, window_ms: int) -> RateLimitUsage:
        collection = await self._get_collection()
        now_ts = self._clock()
        now = datetime.fromtimestamp(now_ts, tz=timezone.utc)
        expire_at = now + timedelta(milliseconds=window_ms)

        live = {"$gt": [{"$ifNull": ["$expireAt", now]}, now]}
        update = [
            {
                "$set": {
                    "count": {
                        "$cond": [live, {"$add": [{"$ifNull": ["$count", 0]}, 1]}, 1]
                    },
                    "expireAt": {"$cond": [live, "$expireAt", expire_at]},
                }
            }
        ]

        try:
            doc = await collection.find_one_and_update(
                {"_id": self._key(key)},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise self._failure("increment", key, exc) from exc

        if not doc:
            raise MalformedReplyAppError(
                code="storage_mongodb_empty_result",
                message="MongoDB upsert returned no document",
                details={"storage": "mongodb", "key_hash": hash_key(key)},
            )

        count = int(doc.get("count") or 0)
        stored_expire = doc.get("expireAt")
        effective_expire = _as_utc(stored_expire) if stored_expire else expire_at
        reset = int(max(effective_expire.timestamp(), now_ts))
        return RateLimitUsage.from_count(count, reset)

    async def decrement(self, key: str) -> None:
        collection = await self._get_collection()
        try:
            await collection.update_one(
                {"_id": self._key(key), "count": {"$gt": 0}},
                {"$inc": {"count": -1}},
            )
        except PyMongoError as exc:
            raise self._failure("decrement", key, exc) from exc

    async def reset(self, key: str) -> None:
        collection = await self._get_collection()
        try:
            await collection.delete_one({"_id": self._key(key)})
        except PyMongoError as exc:
            raise self._failure("reset", key, exc) from exc

    async def close(self) -> None:
        if self._owns_client:
            await self.client.close()

    async def get_active_keys(self) -> list[str]:
        collection = await self._get_collection()
        pattern = f"^{re.escape(KEY_PREFIX)}"
        keys: list[str] = []
        try:
            async for doc in collection.find({"_id": {"$regex": pattern}}, {"_id": 1}):
                keys.append(str(doc["_id"])[len(KEY_PREFIX):])
        except PyMongoError as exc:
            raise self._failure("get_active_keys", None, exc) from exc
        return keys
