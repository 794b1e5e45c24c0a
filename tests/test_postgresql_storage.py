"""Tests for the SQL counter storage.

The upsert statement is portable, so these run against in-memory SQLite
through aiosqlite instead of a live PostgreSQL server.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from limitr.adapters.storage import PostgresStorage
from limitr.adapters.storage.postgresql import build_engine_url, rate_limits
from limitr.core.errors import StorageAppError
from limitr.schemas.options import PostgresConfig


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    await engine.dispose()


@pytest.fixture
def storage(engine, clock) -> PostgresStorage:
    return PostgresStorage(engine, clock=clock)


async def _stored_count(engine, key: str) -> int | None:
    async with engine.connect() as conn:
        result = await conn.execute(
            select(rate_limits.c.count).where(rate_limits.c.id == f"limitr:{key}")
        )
        return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_first_increment_creates_table_and_row(storage: PostgresStorage, engine) -> None:
    usage = await storage.increment("k", 60_000)

    assert usage.used == 1
    assert usage.reset == 1_060
    assert await _stored_count(engine, "k") == 1


@pytest.mark.asyncio
async def test_increments_keep_the_window(storage: PostgresStorage, clock) -> None:
    await storage.increment("k", 60_000)
    clock.advance(20)

    usage = await storage.increment("k", 60_000)

    assert usage.used == 2
    assert usage.reset == 1_060


@pytest.mark.asyncio
async def test_expired_row_restarts_at_one(storage: PostgresStorage, clock) -> None:
    await storage.increment("k", 10_000)
    await storage.increment("k", 10_000)
    clock.advance(10)

    usage = await storage.increment("k", 10_000)

    assert usage.used == 1
    assert usage.reset == 1_020


@pytest.mark.asyncio
async def test_decrement_floors_at_zero(storage: PostgresStorage, engine) -> None:
    await storage.increment("k", 60_000)
    await storage.decrement("k")
    await storage.decrement("k")
    await storage.decrement("ghost")

    assert await _stored_count(engine, "k") == 0
    assert await _stored_count(engine, "ghost") is None


@pytest.mark.asyncio
async def test_reset_and_active_keys(storage: PostgresStorage) -> None:
    await storage.increment("a", 60_000)
    await storage.increment("b", 60_000)

    await storage.reset("a")

    assert await storage.get_active_keys() == ["b"]


@pytest.mark.asyncio
async def test_close_keeps_caller_engine(storage: PostgresStorage, engine) -> None:
    await storage.increment("k", 60_000)

    await storage.close()

    assert await _stored_count(engine, "k") == 1


@pytest.mark.asyncio
async def test_missing_table_without_auto_create_is_wrapped(engine, clock) -> None:
    storage = PostgresStorage(engine, auto_create_table=False, clock=clock)

    with pytest.raises(StorageAppError) as exc_info:
        await storage.increment("k", 1_000)

    assert exc_info.value.code == "storage_postgresql_error"
    assert exc_info.value.details["operation"] == "increment"


class TestBuildEngineUrl:
    def test_switches_plain_postgres_urls_to_asyncpg(self) -> None:
        url = build_engine_url(
            PostgresConfig(connection_string="postgresql://app:pw@db:5432/limits")
        )

        assert url.drivername == "postgresql+asyncpg"
        assert url.host == "db"
        assert url.database == "limits"

    def test_keeps_explicit_driver(self) -> None:
        url = build_engine_url(PostgresConfig(connection_string="sqlite+aiosqlite:///x.db"))

        assert url.drivername == "sqlite+aiosqlite"

    def test_builds_from_parts(self) -> None:
        url = build_engine_url(
            PostgresConfig(host="pg", port=6543, user="app", password="pw", database="limits")
        )

        assert url.drivername == "postgresql+asyncpg"
        assert url.port == 6543
        assert url.username == "app"


@pytest.mark.asyncio
async def test_concurrent_increments_are_each_counted_once(tmp_path, clock) -> None:
    # SQLite allows one writer at a time, so the pool is capped at one
    # connection and concurrent requests queue at checkout.
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'limits.db'}",
        pool_size=1,
        max_overflow=0,
    )
    storage = PostgresStorage(engine, clock=clock)
    try:
        await storage.increment("warmup", 60_000)
        results = await asyncio.gather(*(storage.increment("k", 60_000) for _ in range(20)))

        assert sorted(usage.used for usage in results) == list(range(1, 21))
        assert await _stored_count(engine, "k") == 20
    finally:
        await engine.dispose()
