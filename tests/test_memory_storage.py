"""Unit tests for the in-memory counter storage."""

import asyncio

import pytest

from limitr.adapters.storage import MemoryStorage, StorageAdapter
from limitr.schemas.usage import UNBOUNDED_LIMIT


@pytest.fixture
def storage(clock) -> MemoryStorage:
    return MemoryStorage(clock=clock)


def test_satisfies_storage_protocol(storage: MemoryStorage) -> None:
    assert isinstance(storage, StorageAdapter)


@pytest.mark.asyncio
async def test_first_hit_opens_a_window(storage: MemoryStorage) -> None:
    usage = await storage.increment("k", 60_000)

    assert usage.used == 1
    assert usage.reset == 1_060
    assert usage.limit == UNBOUNDED_LIMIT
    assert usage.remaining == UNBOUNDED_LIMIT - 1


@pytest.mark.asyncio
async def test_counts_hits_in_the_same_window(storage: MemoryStorage, clock) -> None:
    for _ in range(4):
        await storage.increment("k", 60_000)
    clock.advance(30)

    usage = await storage.increment("k", 60_000)

    assert usage.used == 5
    assert usage.reset == 1_060


@pytest.mark.asyncio
async def test_window_rotates_after_expiry(storage: MemoryStorage, clock) -> None:
    await storage.increment("k", 10_000)
    await storage.increment("k", 10_000)
    clock.advance(10)

    usage = await storage.increment("k", 10_000)

    assert usage.used == 1
    assert usage.reset == 1_020


@pytest.mark.asyncio
async def test_keys_are_counted_independently(storage: MemoryStorage) -> None:
    await storage.increment("a", 60_000)
    await storage.increment("a", 60_000)

    usage = await storage.increment("b", 60_000)

    assert usage.used == 1


@pytest.mark.asyncio
async def test_decrement_floors_at_zero(storage: MemoryStorage) -> None:
    await storage.increment("k", 60_000)
    await storage.decrement("k")
    await storage.decrement("k")

    usage = await storage.increment("k", 60_000)

    assert usage.used == 1


@pytest.mark.asyncio
async def test_decrement_missing_key_does_not_create_it(storage: MemoryStorage) -> None:
    await storage.decrement("ghost")

    assert await storage.get_active_keys() == []


@pytest.mark.asyncio
async def test_reset_deletes_the_counter(storage: MemoryStorage) -> None:
    await storage.increment("k", 60_000)
    await storage.increment("k", 60_000)

    await storage.reset("k")
    usage = await storage.increment("k", 60_000)

    assert usage.used == 1


@pytest.mark.asyncio
async def test_active_keys_exclude_expired_windows(storage: MemoryStorage, clock) -> None:
    await storage.increment("short", 1_000)
    await storage.increment("long", 60_000)
    clock.advance(5)

    assert await storage.get_active_keys() == ["long"]


@pytest.mark.asyncio
async def test_close_drops_all_state(storage: MemoryStorage) -> None:
    await storage.increment("k", 60_000)

    await storage.close()

    assert await storage.get_active_keys() == []


@pytest.mark.asyncio
async def test_concurrent_increments_are_each_counted_once(storage: MemoryStorage) -> None:
    results = await asyncio.gather(*(storage.increment("k", 60_000) for _ in range(50)))

    assert sorted(usage.used for usage in results) == list(range(1, 51))
