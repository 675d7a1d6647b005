"""Per-user conversation state: an in-memory cache over pluggable persistence.

Entries live for ``unload_after`` seconds after their last read or write.  A
background sweep owned by the store drops expired entries and, if the cache
is still above ``max_size``, evicts the entries that expire soonest.  The
cache is a working set only; durability belongs to the injected ``load`` and
``save`` callables.

All cache mutations, on the request path and in the sweep, go through one
``asyncio.Lock``.  The lock is never held while ``load`` or ``save`` run.
"""

from __future__ import annotations

import asyncio
import dataclasses
import heapq
import inspect
import time
from typing import Any, Callable, Hashable

from core.logger import SwitchboardLogger

logger = SwitchboardLogger.get_logger()

LoadFunc = Callable[[Hashable], Any]
SaveFunc = Callable[[Hashable, Any], Any]


@dataclasses.dataclass(slots=True)
class StateEntry:
    value: Any
    expires_at: float


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class StateStore:
    """TTL + capacity bounded state cache keyed by user id.

    Usage::

        store = StateStore(unload_after=60, max_size=100,
                           load=db.load_state, save=db.save_state)
        store.start(interval=1.0)
        state = await store.get(user_id)
        await store.set(user_id, {**state, "step": 2})
        await store.stop()
    """

    DEFAULT_UNLOAD_AFTER: float = 60
    DEFAULT_MAX_SIZE: int = 100

    def __init__(
        self,
        unload_after: float = DEFAULT_UNLOAD_AFTER,
        max_size: int = DEFAULT_MAX_SIZE,
        load: LoadFunc | None = None,
        save: SaveFunc | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache: dict[Hashable, StateEntry] = {}
        self._unload_after = unload_after
        self._max_size = max_size
        self.load: LoadFunc = load or self._default_load
        self.save: SaveFunc = save or self._default_save
        self._clock = clock
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None
        self._warned_not_durable = False

    # ── configuration ────────────────────────────────────────────────────

    @property
    def unload_after(self) -> float:
        return self._unload_after

    def set_unload_after(self, seconds: float) -> None:
        self._unload_after = seconds

    @property
    def max_size(self) -> int:
        return self._max_size

    def set_max_size(self, amount: int) -> None:
        self._max_size = amount

    @property
    def size(self) -> int:
        """Number of cached entries, including expired ones not yet swept."""
        return len(self._cache)

    # ── default persistence ──────────────────────────────────────────────

    @staticmethod
    def _default_load(user_id: Hashable) -> dict:
        return {}

    def _default_save(self, user_id: Hashable, value: Any) -> None:
        if not self._warned_not_durable:
            logger.warning(
                "State save not implemented; state lives in memory only",
                extra={"user_id": user_id},
            )
            self._warned_not_durable = True

    # ── request path ─────────────────────────────────────────────────────

    async def get(self, user_id: Hashable) -> Any:
        """Return the state of *user_id*, loading it on a miss.

        A live entry has its expiry refreshed.  An expired entry counts as
        absent and is reloaded.
        """
        async with self._lock:
            entry = self._cache.get(user_id)
            now = self._clock()
            if entry is not None and entry.expires_at > now:
                entry.expires_at = now + self._unload_after
                return entry.value

        value = await _maybe_await(self.load(user_id))
        if value is None:
            value = {}

        async with self._lock:
            entry = self._cache.get(user_id)
            now = self._clock()
            if entry is not None and entry.expires_at > now:
                # Another coroutine cached a value while we were loading.
                entry.expires_at = now + self._unload_after
                return entry.value
            self._cache[user_id] = StateEntry(value, now + self._unload_after)
        logger.debug("State loaded", extra={"user_id": user_id})
        return value

    async def set(self, user_id: Hashable, value: Any) -> Any:
        """Cache *value* for *user_id*, persist it and return ``save``'s result."""
        async with self._lock:
            self._cache[user_id] = StateEntry(value, self._clock() + self._unload_after)
        return await _maybe_await(self.save(user_id, value))

    async def delete(self, user_id: Hashable) -> bool:
        """Drop *user_id* from the cache (persistence is untouched)."""
        async with self._lock:
            return self._cache.pop(user_id, None) is not None

    def peek(self, user_id: Hashable) -> Any:
        """Return the cached value without loading or refreshing it."""
        entry = self._cache.get(user_id)
        return entry.value if entry is not None else None

    def expires_at(self, user_id: Hashable) -> float | None:
        entry = self._cache.get(user_id)
        return entry.expires_at if entry is not None else None

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._cache

    # ── sweep ────────────────────────────────────────────────────────────

    async def sweep(self) -> int:
        """Expire stale entries, then evict soonest-expiring ones over capacity.

        Returns the number of entries removed.
        """
        async with self._lock:
            now = self._clock()
            expired = [uid for uid, entry in self._cache.items() if entry.expires_at <= now]
            for uid in expired:
                del self._cache[uid]

            evicted: list[Hashable] = []
            overflow = len(self._cache) - self._max_size
            if overflow > 0:
                soonest = heapq.nsmallest(
                    overflow, self._cache.items(), key=lambda item: item[1].expires_at
                )
                evicted = [uid for uid, _ in soonest]
                for uid in evicted:
                    del self._cache[uid]

        if expired or evicted:
            logger.debug(
                "State cache swept",
                extra={"expired": len(expired), "evicted": len(evicted), "size": len(self._cache)},
            )
        return len(expired) + len(evicted)

    def start(self, interval: float = 1.0) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            self._sweeper.cancel()
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval))

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("State sweep failed")
