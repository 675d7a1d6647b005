"""Named action registry — the single source of truth for action name → callable.

Callback tokens, chain results and the awaiting-input state all refer to
actions by name, so names must be unique within one bot.  Registration
returns an :class:`ActionRef`, a stable handle that keyboards and
``ctx.input()`` accept in place of the raw string.

Anonymous callables (lambdas, partials) have no stable name.  They may only be
registered before the bot starts serving updates; they receive a synthetic
name derived from their source location so a restart of the same code yields
the same name.
"""

from __future__ import annotations

import dataclasses
import hashlib
import inspect
import secrets
from typing import Any, Callable, Iterable

from core.codec import coerce_args
from core.errors import CallbackNotFound, CallbackOverride, NamelessCallback
from core.logger import SwitchboardLogger

logger = SwitchboardLogger.get_logger()

ActionFunc = Callable[..., Any]


@dataclasses.dataclass(frozen=True, slots=True)
class ActionRef:
    """Opaque handle returned by :meth:`ActionRegistry.register`."""

    name: str

    def __str__(self) -> str:
        return self.name


def is_anonymous(func: ActionFunc) -> bool:
    """Return ``True`` for callables whose name cannot identify them."""
    name = getattr(func, "__name__", "")
    return not name or name == "<lambda>"


def synthetic_name(func: ActionFunc) -> str:
    """Derive a restart-stable name for an anonymous *func*.

    Built from the defining module, qualified name and first line of the code
    object.  Callables without a code object get a random one-shot name.
    """
    code = getattr(func, "__code__", None)
    if code is None:
        return "anon_" + secrets.token_hex(3)
    origin = f"{getattr(func, '__module__', '')}:{getattr(func, '__qualname__', '')}:{code.co_filename}:{code.co_firstlineno}"
    return "anon_" + hashlib.sha256(origin.encode("utf-8")).hexdigest()[:6]


def name_of(action: ActionRef | str | ActionFunc) -> str:
    """Return the registered name an action reference points to."""
    if isinstance(action, ActionRef):
        return action.name
    if isinstance(action, str):
        return action
    return getattr(action, "__name__", "")


class ActionRegistry:
    """Store actions by unique name and invoke them with decoded arguments.

    Usage::

        actions = ActionRegistry()

        @actions.action()
        async def clicked(ctx, amount=0): ...

        ref = actions.register(cancel)
        await actions.invoke(ctx, "clicked", ["1"])
    """

    def __init__(self, *, allow_override: bool = False) -> None:
        self._actions: dict[str, ActionFunc] = {}
        self.allow_override = allow_override
        self._started = False

    # ── lifecycle ────────────────────────────────────────────────────────

    @property
    def started(self) -> bool:
        return self._started

    def mark_started(self) -> None:
        """Freeze anonymous registration; called when the bot starts serving."""
        self._started = True

    # ── registration ─────────────────────────────────────────────────────

    def register(self, func: ActionFunc, *more: ActionFunc, name: str | None = None) -> ActionRef:
        """Register one or more callables and return the ref of the first.

        Raises:
            CallbackOverride: the name is taken and overriding is disabled.
            NamelessCallback: an anonymous callable arrives after start.
            ValueError: *name* is combined with several callables.
        """
        if more and name is not None:
            raise ValueError("An explicit name can only be given for a single action")
        first = self._register_one(func, name)
        for extra in more:
            self._register_one(extra, None)
        return first

    def action(self, name: str | None = None) -> Callable[[ActionFunc], ActionFunc]:
        """Decorator form of :meth:`register`.

        Example::

            @actions.action("open_form")
            async def open_form(ctx): ...
        """
        def decorator(func: ActionFunc) -> ActionFunc:
            self._register_one(func, name)
            return func
        return decorator

    def ensure(self, func: ActionFunc) -> ActionRef:
        """Return the ref for *func*, registering it first if needed."""
        for registered_name, registered in self._actions.items():
            if registered is func:
                return ActionRef(registered_name)
        return self._register_one(func, None)

    def _register_one(self, func: ActionFunc, name: str | None) -> ActionRef:
        if not callable(func):
            raise TypeError(f"Action must be callable, got {type(func).__name__}")

        if name is None:
            if is_anonymous(func):
                if self._started:
                    raise NamelessCallback(
                        "Anonymous actions can only be registered before the bot starts; "
                        "pass an explicit name instead"
                    )
                name = self._free_synthetic_name(func)
                logger.debug("Registered anonymous action", extra={"action": name})
            else:
                name = func.__name__

        if " " in name or not name:
            raise ValueError(f"Action name {name!r} must be non-empty and contain no spaces")

        existing = self._actions.get(name)
        if existing is not None and existing is not func and not self.allow_override:
            raise CallbackOverride(f"Action with name {name} already registered!")

        self._actions[name] = func
        return ActionRef(name)

    def _free_synthetic_name(self, func: ActionFunc) -> str:
        base = synthetic_name(func)
        candidate, suffix = base, 2
        while candidate in self._actions and self._actions[candidate] is not func:
            candidate = f"{base}_{suffix}"
            suffix += 1
        return candidate

    # ── lookup ───────────────────────────────────────────────────────────

    def get(self, name: str) -> ActionFunc | None:
        return self._actions.get(name)

    def has(self, action: ActionRef | str | ActionFunc) -> bool:
        if callable(action) and not isinstance(action, (ActionRef, str)):
            return any(registered is action for registered in self._actions.values())
        return name_of(action) in self._actions

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._actions

    def names(self) -> list[str]:
        return list(self._actions)

    # ── invocation ───────────────────────────────────────────────────────

    async def invoke(self, ctx: Any, name: str, raw_args: Iterable[str] = ()) -> Any:
        """Coerce *raw_args* and call the action registered as *name*.

        An unknown name is reported and treated as "not handled" (``False``);
        it never raises.
        """
        func = self._actions.get(name)
        if func is None:
            err = CallbackNotFound(f"Action wasn't registered. Action name: {name}")
            logger.error(str(err), extra={"action": name})
            return False
        result = func(ctx, *coerce_args(raw_args))
        if inspect.isawaitable(result):
            result = await result
        return result
