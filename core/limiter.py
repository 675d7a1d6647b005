"""Per-user cooldown limiter used as the dispatcher's rate-limit hook.

Each update from a user pushes that user's deadline to ``now + interval``.
An update that arrives before the previous deadline is "limited", unless an
``on_limited`` callback is configured and returns a falsy value (letting the
bot author decide, e.g. after warning the user).
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable

from core.logger import SwitchboardLogger

logger = SwitchboardLogger.get_logger()


class RateLimiter:
    """Cooldown tracker keyed by user id."""

    SWEEP_INTERVAL: float = 10.0

    def __init__(
        self,
        seconds: float,
        on_limited: Callable[..., Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = seconds
        self.on_limited = on_limited
        self._clock = clock
        self._deadlines: dict[int, float] = {}
        self._sweeper: asyncio.Task | None = None

    def configure(self, seconds: float, on_limited: Callable[..., Any] | None = None) -> None:
        self.interval = seconds
        self.on_limited = on_limited

    async def handle(self, ctx: Any) -> bool:
        """Record an update from ``ctx.user_id`` and report whether it is limited."""
        user_id = ctx.user_id
        if user_id is None or not self.interval:
            return False
        now = self._clock()
        previous = self._deadlines.get(user_id, 0.0)
        self._deadlines[user_id] = now + self.interval
        if previous <= now:
            return False
        if self.on_limited is None:
            logger.info("Update rate-limited", extra={"user_id": user_id})
            return True
        verdict = self.on_limited(ctx)
        if inspect.isawaitable(verdict):
            verdict = await verdict
        return bool(verdict)

    def sweep(self) -> int:
        now = self._clock()
        stale = [uid for uid, deadline in self._deadlines.items() if deadline < now]
        for uid in stale:
            del self._deadlines[uid]
        return len(stale)

    def __len__(self) -> int:
        return len(self._deadlines)

    def start(self, interval: float = SWEEP_INTERVAL) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            self._sweeper.cancel()
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval))

    async def stop(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()
