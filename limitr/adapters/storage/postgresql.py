"""PostgreSQL-backed counter storage on SQLAlchemy's asyncio engine.

The increment is a single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
statement. When the stored expiry has passed, the row restarts at 1 with the
new expiry; otherwise the count goes up and the expiry is kept. Expiries are
stored as epoch milliseconds computed from the adapter's clock, which keeps
the statement portable (SQLite 3.35+ accepts it too).

Every operation checks a connection out of the engine's pool and returns it
when the transaction block exits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from sqlalchemy import BigInteger, Column, Index, MetaData, Table, Text, delete, select, text, update
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from limitr.adapters.storage.base import KEY_PREFIX, hash_key
from limitr.core.errors import ErrorDetails, MalformedReplyAppError, StorageAppError
from limitr.schemas.options import PostgresConfig
from limitr.schemas.usage import RateLimitUsage

logger = logging.getLogger(__name__)

metadata = MetaData()

rate_limits = Table(
    "rate_limits",
    metadata,
    Column("id", Text, primary_key=True),
    Column("count", BigInteger, nullable=False),
    Column("expire_at", BigInteger),
    Index("rate_limits_id_idx", "id"),
)

_INCREMENT_SQL = text(
    """
    INSERT INTO rate_limits (id, count, expire_at)
    VALUES (:id, 1, :expire_at)
    ON CONFLICT (id) DO UPDATE
      SET count = CASE
            WHEN rate_limits.expire_at IS NULL OR rate_limits.expire_at <= :now THEN 1
            ELSE rate_limits.count + 1
          END,
          expire_at = CASE
            WHEN rate_limits.expire_at IS NULL OR rate_limits.expire_at <= :now THEN excluded.expire_at
            ELSE rate_limits.expire_at
          END
    RETURNING count, expire_at
    """
)


def build_engine_url(config: PostgresConfig) -> URL:
    """Build an asyncpg SQLAlchemy URL from connection settings."""
    if config.connection_string:
        url = make_url(config.connection_string)
        if url.drivername in ("postgres", "postgresql"):
            url = url.set(drivername="postgresql+asyncpg")
        return url
    return URL.create(
        "postgresql+asyncpg",
        username=config.user,
        password=config.password,
        host=config.host,
        port=config.port,
        database=config.database,
    )


class PostgresStorage:
    """Counter storage in a ``rate_limits`` table.

    Args:
        engine_or_config: An ``AsyncEngine`` (never disposed here) or the
            settings used to create one (disposed on close).
        auto_create_table: Create the table and index on first use. Defaults
            to the config value, or True for caller-supplied engines.
        clock: Time source function returning UNIX time in seconds.
    """

    def __init__(
        self,
        engine_or_config: AsyncEngine | PostgresConfig,
        *,
        auto_create_table: bool | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if isinstance(engine_or_config, PostgresConfig):
            engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
            if engine_or_config.max:
                engine_kwargs["pool_size"] = engine_or_config.max
            self.engine: AsyncEngine = create_async_engine(
                build_engine_url(engine_or_config), **engine_kwargs
            )
            self._owns_engine = True
            default_auto_create = engine_or_config.auto_create_table
        else:
            self.engine = engine_or_config
            self._owns_engine = False
            default_auto_create = True

        self._auto_create_table = (
            default_auto_create if auto_create_table is None else auto_create_table
        )
        self._table_ready = False
        self._table_lock = asyncio.Lock()
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    def _failure(self, operation: str, key: str | None, exc: Exception) -> StorageAppError:
        details: ErrorDetails = {"storage": "postgresql", "operation": operation}
        if key is not None:
            details["key_hash"] = hash_key(key)
        logger.warning(
            "storage.postgresql_error", extra={**details, "error_type": type(exc).__name__}
        )
        return StorageAppError(
            code="storage_postgresql_error",
            message=f"PostgreSQL {operation} failed: {exc}",
            details=details,
        )

    async def _ensure_table(self) -> None:
        if self._table_ready or not self._auto_create_table:
            return

        async with self._table_lock:
            if self._table_ready:
                return
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(metadata.create_all, checkfirst=True)
            except SQLAlchemyError as exc:
                raise self._failure("create_table", None, exc) from exc
            self._table_ready = True
            logger.info("storage.postgresql_table_ready", extra={"table": rate_limits.name})

    async def increment(self, key: str, window_ms: int) -> RateLimitUsage:
        await self._ensure_table()
        now_ms = int(self._clock() * 1000)

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    _INCREMENT_SQL,
                    {"id": self._key(key), "expire_at": now_ms + window_ms, "now": now_ms},
                )
                row = result.first()
        except SQLAlchemyError as exc:
            raise self._failure("increment", key, exc) from exc

        if row is None:
            raise MalformedReplyAppError(
                code="storage_postgresql_empty_result",
                message="PostgreSQL upsert returned no row",
                details={"storage": "postgresql", "key_hash": hash_key(key)},
            )

        stored_count, stored_expire = row
        count = int(stored_count)
        expire_at_ms = int(stored_expire) if stored_expire is not None else now_ms + window_ms
        reset = max(expire_at_ms, now_ms) // 1000
        return RateLimitUsage.from_count(count, reset)

    async def decrement(self, key: str) -> None:
        await self._ensure_table()
        statement = (
            update(rate_limits)
            .where(rate_limits.c.id == self._key(key), rate_limits.c.count > 0)
            .values(count=rate_limits.c.count - 1)
        )
        try:
            async with self.engine.begin() as conn:
                await conn.execute(statement)
        except SQLAlchemyError as exc:
            raise self._failure("decrement", key, exc) from exc

    async def reset(self, key: str) -> None:
        await self._ensure_table()
        try:
            async with self.engine.begin() as conn:
                await conn.execute(delete(rate_limits).where(rate_limits.c.id == self._key(key)))
        except SQLAlchemyError as exc:
            raise self._failure("reset", key, exc) from exc

    async def close(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()

    async def get_active_keys(self) -> list[str]:
        await self._ensure_table()
        statement = select(rate_limits.c.id).where(rate_limits.c.id.like(f"{KEY_PREFIX}%"))
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(statement)
                ids = result.scalars().all()
        except SQLAlchemyError as exc:
            raise self._failure("get_active_keys", None, exc) from exc
        return [str(row_id)[len(KEY_PREFIX):] for row_id in ids]
