from datetime import datetime, timezone

import pytest

from app.schemas.dashboard import DashboardStats
from app.services import dashboard
from app.utils.ttl_cache import InMemoryTTLCache, RedisTTLCache
from conftest import FakeAsyncSession, FakeResult


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def setex(self, key, ttl, value):
        raise ConnectionError("redis down")

    async def delete(self, key):
        raise ConnectionError("redis down")


def _stats_db(count: int = 3) -> FakeAsyncSession:
    db = FakeAsyncSession()
    db.on_execute_return(FakeResult(scalar=count))
    return db


@pytest.mark.asyncio
async def test_memory_cache_expires_after_ttl():
    clock = FakeClock()
    cache = InMemoryTTLCache(clock=clock)
    await cache.set("k", {"v": 1}, ttl_seconds=60)

    clock.advance(59)
    assert await cache.get("k") == {"v": 1}
    clock.advance(1)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_memory_cache_invalidate():
    cache = InMemoryTTLCache(clock=FakeClock())
    await cache.set("k", 1, ttl_seconds=60)
    await cache.invalidate("k")
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_redis_cache_errors_degrade_to_misses():
    cache = RedisTTLCache(BrokenRedis())
    assert await cache.get("k") is None
    await cache.set("k", {"v": 1}, ttl_seconds=60)
    await cache.invalidate("k")


@pytest.mark.asyncio
async def test_build_admin_stats_derives_remainders():
    now = datetime(2025, 6, 1, 12, tzinfo=timezone.utc)
    stats = await dashboard.build_admin_stats(_stats_db(3), now=now)

    assert stats.customers.total == 3
    assert stats.agents.pending == 0
    assert stats.employees.inactive == 0
    assert stats.pending_changes.needs_review == 6
    assert stats.loan_requests.overdue == 3
    assert stats.last_updated == now


@pytest.mark.asyncio
async def test_admin_stats_served_from_cache_until_invalidated():
    cache = InMemoryTTLCache(clock=FakeClock())
    first_db = _stats_db(3)

    first = await dashboard.get_admin_stats(first_db, cache=cache)
    assert first.customers.total == 3
    queries = len(first_db.executed)
    assert queries > 0

    second_db = _stats_db(9)
    second = await dashboard.get_admin_stats(second_db, cache=cache)
    assert isinstance(second, DashboardStats)
    assert second.customers.total == 3
    assert second_db.executed == []

    await dashboard.invalidate_admin_stats(cache=cache)
    third = await dashboard.get_admin_stats(second_db, cache=cache)
    assert third.customers.total == 9


@pytest.mark.asyncio
async def test_admin_stats_recomputed_after_ttl(monkeypatch):
    clock = FakeClock()
    cache = InMemoryTTLCache(clock=clock)
    monkeypatch.setattr(dashboard.settings, "dashboard_cache_ttl_seconds", 30)

    await dashboard.get_admin_stats(_stats_db(1), cache=cache)
    clock.advance(31)
    refreshed = await dashboard.get_admin_stats(_stats_db(5), cache=cache)
    assert refreshed.customers.total == 5
