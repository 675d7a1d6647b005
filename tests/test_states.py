"""Tests for core.states — TTL and capacity bounded state cache."""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.states import StateStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── Request path ─────────────────────────────────────────────────────────────


class TestGetSet:
    """Validate loading, caching and expiry refresh."""

    @pytest.mark.asyncio
    async def test_miss_loads_and_caches(self) -> None:
        load = MagicMock(return_value={"step": 1})
        store = StateStore(load=load, clock=FakeClock())
        assert await store.get(7) == {"step": 1}
        assert await store.get(7) == {"step": 1}
        load.assert_called_once_with(7)
        assert 7 in store

    @pytest.mark.asyncio
    async def test_async_load_and_none_becomes_empty(self) -> None:
        store = StateStore(load=AsyncMock(return_value=None))
        assert await store.get(1) == {}

    @pytest.mark.asyncio
    async def test_set_caches_and_saves(self) -> None:
        save = AsyncMock(return_value="saved")
        store = StateStore(save=save, clock=FakeClock())
        assert await store.set(5, {"a": 1}) == "saved"
        save.assert_awaited_once_with(5, {"a": 1})
        assert store.peek(5) == {"a": 1}

    @pytest.mark.asyncio
    async def test_set_then_get_within_ttl(self) -> None:
        clock = FakeClock()
        load = MagicMock(return_value={})
        store = StateStore(unload_after=60, load=load, clock=clock)
        await store.set(1, {"x": 1})
        clock.advance(59)
        assert await store.get(1) == {"x": 1}
        load.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_entry_is_reloaded(self) -> None:
        clock = FakeClock()
        load = MagicMock(return_value={"fresh": True})
        store = StateStore(unload_after=60, load=load, clock=clock)
        await store.set(1, {"x": 1})
        clock.advance(61)
        assert await store.get(1) == {"fresh": True}
        load.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_read_refreshes_expiry(self) -> None:
        clock = FakeClock()
        store = StateStore(unload_after=60, clock=clock)
        await store.set(1, {})
        clock.advance(30)
        await store.get(1)
        assert store.expires_at(1) == clock.now + 60

    @pytest.mark.asyncio
    async def test_default_save_warns_once(self) -> None:
        store = StateStore()
        with patch("core.states.logger.warning") as warning:
            await store.set(1, {})
            await store.set(2, {})
        warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        store = StateStore()
        store.save = MagicMock(return_value=None)
        await store.set(1, {})
        assert await store.delete(1) is True
        assert await store.delete(1) is False
        assert store.peek(1) is None


# ── Sweep ────────────────────────────────────────────────────────────────────


class TestSweep:
    """Validate expiry and capacity eviction."""

    @pytest.mark.asyncio
    async def test_expired_entries_removed(self) -> None:
        clock = FakeClock()
        store = StateStore(unload_after=10, clock=clock)
        store.save = MagicMock(return_value=None)
        await store.set(1, {})
        clock.advance(5)
        await store.set(2, {})
        clock.advance(6)
        assert await store.sweep() == 1
        assert 1 not in store
        assert 2 in store

    @pytest.mark.asyncio
    async def test_capacity_keeps_latest(self) -> None:
        clock = FakeClock()
        store = StateStore(unload_after=60, max_size=3, clock=clock)
        store.save = MagicMock(return_value=None)
        for uid in range(6):
            await store.set(uid, {"uid": uid})
            clock.advance(1)
        assert await store.sweep() == 3
        assert store.size == 3
        assert all(uid in store for uid in (3, 4, 5))

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        clock = FakeClock()
        store = StateStore(unload_after=1, clock=clock)
        store.save = MagicMock(return_value=None)
        await store.set(1, {})
        clock.advance(2)
        store.start(interval=0.01)
        assert store.running
        await asyncio.sleep(0.05)
        await store.stop()
        assert not store.running
        assert store.size == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        await StateStore().stop()


class TestConfiguration:
    def test_setters(self) -> None:
        store = StateStore()
        assert store.unload_after == StateStore.DEFAULT_UNLOAD_AFTER
        store.set_unload_after(5)
        store.set_max_size(2)
        assert (store.unload_after, store.max_size) == (5, 2)
