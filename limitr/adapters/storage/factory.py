"""Factory selecting the storage adapter from the configured storage kind."""

from __future__ import annotations

import time
from typing import Any, Callable

from limitr.adapters.storage.base import StorageAdapter
from limitr.adapters.storage.edge import KVStorage, UpstashStorage
from limitr.adapters.storage.in_memory import MemoryStorage
from limitr.adapters.storage.mongodb import MongoStorage
from limitr.adapters.storage.postgresql import PostgresStorage
from limitr.adapters.storage.redis_storage import RedisStorage
from limitr.core.errors import ConfigurationAppError
from limitr.schemas.options import RateLimitOptions


def _first_set(client: Any, config: Any) -> Any:
    # Some driver objects refuse truth-value testing, so compare with None.
    return client if client is not None else config


def _missing(storage: str, hint: str) -> ConfigurationAppError:
    return ConfigurationAppError(
        code=f"{storage}_storage_not_configured",
        message=f"{hint} is required when using {storage} storage",
        details={"storage": storage, "hint": hint},
    )


def create_storage(
    options: RateLimitOptions,
    *,
    clock: Callable[[], float] = time.time,
) -> StorageAdapter:
    """Instantiate the storage adapter selected by ``options.storage``.

    A caller-supplied client takes precedence over connection settings and is
    never closed by the adapter.

    Args:
        options: Effective global options.
        clock: Time source passed to the adapter.

    Returns:
        StorageAdapter: Ready-to-use adapter instance.

    Raises:
        ConfigurationAppError: If the selected kind lacks its client or config.
    """
    storage = options.storage

    if storage == "memory":
        return MemoryStorage(clock=clock)

    if storage == "redis":
        redis_target = _first_set(options.redis_client, options.redis_config)
        if redis_target is None:
            raise _missing("redis", "Redis configuration or client")
        return RedisStorage(redis_target, clock=clock)

    if storage == "mongodb":
        mongo_target = _first_set(options.mongo_client, options.mongo_config)
        if mongo_target is None:
            raise _missing("mongodb", "MongoDB configuration or client")
        return MongoStorage(mongo_target, clock=clock)

    if storage == "postgresql":
        postgres_target = _first_set(options.postgres_client, options.postgres_config)
        if postgres_target is None:
            raise _missing("postgresql", "PostgreSQL configuration or engine")
        return PostgresStorage(postgres_target, clock=clock)

    if storage == "edge":
        edge = options.edge_config
        if edge is None:
            raise _missing("edge", "Edge configuration")
        if edge.kind == "upstash":
            if edge.upstash is None:
                raise _missing("edge", "Upstash configuration")
            return UpstashStorage(edge.upstash, clock=clock)
        if edge.kv is None:
            raise _missing("edge", "Cloudflare KV namespace")
        return KVStorage(edge.kv, clock=clock)

    raise ConfigurationAppError(
        code="unknown_storage",
        message=(
            f"Unknown storage kind: '{storage}'. "
            "Supported kinds: memory, redis, mongodb, postgresql, edge"
        ),
    )
