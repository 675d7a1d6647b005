"""Tests for core.limiter, core.identity and core.errors.ErrorPolicy."""

import os
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.errors import ErrorPolicy, MediaFileNotFound, ParserError
from core.identity import get_identity
from core.limiter import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def ctx_for(user_id):
    return SimpleNamespace(user_id=user_id)


# ── RateLimiter ──────────────────────────────────────────────────────────────


class TestRateLimiter:
    """Validate the per-user cooldown."""

    @pytest.mark.asyncio
    async def test_first_update_passes(self) -> None:
        limiter = RateLimiter(1, clock=FakeClock())
        assert await limiter.handle(ctx_for(1)) is False

    @pytest.mark.asyncio
    async def test_second_update_within_interval_limited(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(1, clock=clock)
        await limiter.handle(ctx_for(1))
        clock.now += 0.5
        assert await limiter.handle(ctx_for(1)) is True
        assert await limiter.handle(ctx_for(2)) is False

    @pytest.mark.asyncio
    async def test_after_interval_passes(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(1, clock=clock)
        await limiter.handle(ctx_for(1))
        clock.now += 1.5
        assert await limiter.handle(ctx_for(1)) is False

    @pytest.mark.asyncio
    async def test_on_limited_verdict(self) -> None:
        clock = FakeClock()
        on_limited = AsyncMock(return_value=False)
        limiter = RateLimiter(1, on_limited=on_limited, clock=clock)
        ctx = ctx_for(1)
        await limiter.handle(ctx)
        assert await limiter.handle(ctx) is False
        on_limited.assert_awaited_once_with(ctx)

    @pytest.mark.asyncio
    async def test_no_user_never_limited(self) -> None:
        limiter = RateLimiter(1, clock=FakeClock())
        assert await limiter.handle(ctx_for(None)) is False
        assert await limiter.handle(ctx_for(None)) is False

    def test_sweep_drops_stale(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(1, clock=clock)
        limiter._deadlines = {1: 99.0, 2: 101.0}
        assert limiter.sweep() == 1
        assert len(limiter) == 1

    def test_configure(self) -> None:
        limiter = RateLimiter(1)
        callback = MagicMock()
        limiter.configure(3, callback)
        assert (limiter.interval, limiter.on_limited) == (3, callback)


# ── Identity ─────────────────────────────────────────────────────────────────


class TestIdentity:
    def test_message_from(self) -> None:
        assert get_identity("message", {"from": {"id": 9}}) == 9

    def test_sender_chat_wins_for_messages(self) -> None:
        payload = {"from": {"id": 9}, "sender_chat": {"id": -100}}
        assert get_identity("message", payload) == -100

    def test_sender_chat_ignored_for_callbacks(self) -> None:
        payload = {"from": {"id": 9}, "sender_chat": {"id": -100}}
        assert get_identity("callback_query", payload) == 9

    def test_user_field(self) -> None:
        assert get_identity("chat_boost", {"user": {"id": 3}}) == 3

    def test_no_sender(self) -> None:
        assert get_identity("poll", {"id": "p"}) is None


# ── ErrorPolicy ──────────────────────────────────────────────────────────────


class TestErrorPolicy:
    def test_default_raises_everything(self) -> None:
        assert ErrorPolicy().should_raise(ParserError("bad"))

    def test_dont_raise(self) -> None:
        policy = ErrorPolicy()
        policy.dont_raise(ParserError, ParserError)
        assert not policy.should_raise(ParserError("bad"))
        assert policy.should_raise(MediaFileNotFound("./x.png"))
        assert policy.suppressed == (ParserError,)
