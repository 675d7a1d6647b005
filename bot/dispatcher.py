"""Update dispatcher.

Routes each incoming Telegram update through the rate limiter, the ordered
handler list, the callback-token path and the awaiting-input path.  Updates
from different users run in parallel; updates from the same user are
serialised so state reads and writes never interleave.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import inspect
from typing import Any, AsyncIterator, Awaitable, Callable

from pydantic import ValidationError

from bot.context import Context
from core.actions import ActionRef, ActionRegistry
from core.codec import PLACEHOLDER, CallbackCodec
from core.errors import CallbackDataError, ChainDepthExceeded
from core.handlers import HandlerRegistry
from core.limiter import RateLimiter
from core.logger import SwitchboardLogger
from sdk.models import Update

logger = SwitchboardLogger.get_logger()

DEFAULT_MAX_CHAIN_DEPTH = 10

CallFunc = Callable[[str, dict], Awaitable[dict]]
ContextFactory = Callable[[dict, str], Context]


def allow_set(state: Any) -> frozenset[str] | None:
    """Derive the allow-set from a state value.

    ``None`` means "no restriction".  An empty list, or ``[""]``, yields an
    empty set that blocks everything except always-run handlers.
    """
    if not isinstance(state, dict) or not state.get("allow"):
        return None
    allow = state["allow"]
    if isinstance(allow, str):
        allow = [allow]
    allow = list(allow)
    if allow == [""]:
        return frozenset()
    return frozenset(str(name) for name in allow)


@dataclasses.dataclass
class _KeyedLock:
    lock: asyncio.Lock = dataclasses.field(default_factory=asyncio.Lock)
    holders: int = 0


class UpdateDispatcher:
    """Process raw update dicts against the registries of one bot.

    Args:
        actions: Named actions reachable from callback tokens and chains.
        handlers: Ordered handler list.
        codec: Callback token codec.
        call: ``async (method, params) -> dict`` used for acknowledgements.
        context_factory: Builds the :class:`Context` for ``(update, kind)``.
        timeout: Upper bound in seconds for one update (``None`` disables it).
        max_chain_depth: Limit for :meth:`resolve_chain` recursion.
    """

    def __init__(
        self,
        actions: ActionRegistry,
        handlers: HandlerRegistry,
        codec: CallbackCodec,
        call: CallFunc,
        context_factory: ContextFactory,
        *,
        timeout: float | None = None,
        max_chain_depth: int = DEFAULT_MAX_CHAIN_DEPTH,
    ) -> None:
        self.actions = actions
        self.handlers = handlers
        self.codec = codec
        self._call = call
        self._context_factory = context_factory
        self.timeout = timeout
        self.max_chain_depth = max_chain_depth
        self.limiter: RateLimiter | None = None
        self.states_enabled = True
        self.observer: Callable[[dict], Any] | None = None
        self._locks: dict[int, _KeyedLock] = {}

    # ── chain resolution ─────────────────────────────────────────────────

    async def resolve_chain(self, result: Any, ctx: Context, depth: int = 0) -> Any:
        """Follow a handler's return value.

        A callable is called with *ctx*; an :class:`ActionRef` or a string
        naming a registered action invokes that action; the result is
        resolved again.  Any other value is final (truthy means "handled").

        Raises:
            ChainDepthExceeded: more than ``max_chain_depth`` hops.
        """
        while True:
            if callable(result):
                step = result(ctx)
            elif isinstance(result, ActionRef) and result.name in self.actions:
                step = self.actions.get(result.name)(ctx)
            elif isinstance(result, str) and result in self.actions:
                step = self.actions.get(result)(ctx)
            else:
                return result
            if depth >= self.max_chain_depth:
                if inspect.iscoroutine(step):
                    step.close()
                raise ChainDepthExceeded(self.max_chain_depth)
            depth += 1
            result = await step if inspect.isawaitable(step) else step

    # ── per-user serialisation ───────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _user_lock(self, user_id: int | None) -> AsyncIterator[None]:
        if user_id is None:
            yield
            return
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _KeyedLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._locks.pop(user_id, None)

    @property
    def active_users(self) -> int:
        """Number of users with an update in flight or waiting."""
        return len(self._locks)

    # ── entry point ──────────────────────────────────────────────────────

    async def process(self, update: dict) -> None:
        """Dispatch one update.  Never raises; failures are logged.

        The observer hook runs afterwards whatever happened.
        """
        update_id = update.get("update_id") if isinstance(update, dict) else None
        try:
            if self.timeout:
                await asyncio.wait_for(self._process(update), timeout=self.timeout)
            else:
                await self._process(update)
        except asyncio.TimeoutError:
            logger.error("Update processing timed out", extra={"update_id": update_id, "timeout": self.timeout})
        except Exception:
            logger.exception("Unhandled error while processing update", extra={"update_id": update_id})
        finally:
            await self._notify_observer(update)

    async def _notify_observer(self, update: dict) -> None:
        if self.observer is None:
            return
        try:
            result = self.observer(update)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Update observer failed", extra={"update_id": update.get("update_id")})

    async def _process(self, update: dict) -> None:
        # ── Validate and build the context ───────────────────────────────
        try:
            model = Update.model_validate(update)
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid update",
                extra={"update_id": update.get("update_id") if isinstance(update, dict) else None, "error": str(exc)},
            )
            return
        ctx = self._context_factory(update, model.kind)
        logger.debug("Processing update", extra={"update_id": ctx.update_id, "kind": ctx.kind, "user_id": ctx.user_id})

        # ── Rate limit ───────────────────────────────────────────────────
        if self.limiter is not None and ctx.user_id is not None and await self.limiter.handle(ctx):
            if ctx.is_callback and ctx.callback_answer:
                await self._answer_callback(ctx)
            return

        async with self._user_lock(ctx.user_id):
            await self._dispatch(ctx)

    async def _dispatch(self, ctx: Context) -> None:
        # ── State and allow-set ──────────────────────────────────────────
        state: dict = {}
        allow: frozenset[str] | None = None
        if self.states_enabled and ctx.user_id is not None:
            state = await ctx.load_state()
            allow = allow_set(state)

        # ── Handlers ─────────────────────────────────────────────────────
        if ctx.is_callback:
            try:
                await self._walk_handlers(ctx, allow)
                await self._run_callback(ctx, allow)
            finally:
                await self._answer_callback(ctx)
            return

        handled = await self._walk_handlers(ctx, allow)

        # ── Kind-specific tail ───────────────────────────────────────────
        if ctx.kind == "inline_query":
            if ctx.inline_answer is not None:
                await self._call("answerInlineQuery", {"inline_query_id": ctx.update.get("id"), **ctx.inline_answer})
        elif not handled and state.get("input"):
            # An input set by a handler above waits for the next update.
            name = state["input"]
            logger.debug("Routing awaited input", extra={"update_id": ctx.update_id, "user_id": ctx.user_id, "action": name})
            await self.resolve_chain(await self.actions.invoke(ctx, name), ctx)

    async def _walk_handlers(self, ctx: Context, allow: frozenset[str] | None) -> bool:
        for handler in self.handlers.iter_matches(ctx.kind, ctx.update, ctx.text):
            if allow is not None and not handler.always_run and handler.name not in allow:
                continue
            if await self.resolve_chain(handler.action, ctx):
                return True
        return False

    async def _run_callback(self, ctx: Context, allow: frozenset[str] | None) -> Any:
        data = ctx.update.get("data")
        if not data or data == PLACEHOLDER:
            return None
        if not self.codec.verify(data):
            logger.warning("Callback signature mismatch", extra={"update_id": ctx.update_id, "user_id": ctx.user_id})
            return None
        try:
            token = self.codec.decode(data)
        except CallbackDataError as exc:
            logger.warning("Malformed callback data", extra={"update_id": ctx.update_id, "error": str(exc)})
            return None
        if allow is not None and token.action not in allow:
            logger.debug(
                "Callback action blocked by allow-set",
                extra={"update_id": ctx.update_id, "user_id": ctx.user_id, "action": token.action},
            )
            return None
        result = await self.actions.invoke(ctx, token.action, token.args)
        return await self.resolve_chain(result, ctx)

    async def _answer_callback(self, ctx: Context) -> None:
        payload = {"callback_query_id": ctx.update.get("id"), **(ctx.callback_answer or {})}
        await self._call("answerCallbackQuery", payload)
