"""TelegramBot: the single service object a bot author works with.

It owns one instance of every collaborator (client, codec, registries, state
store, limiter, error policy, message sender, dispatcher), all passed in or
built in the constructor.  There is no global bot registry; keyboards and
paginations always receive their bot explicitly.

Usage::

    bot = TelegramBot(token)

    @bot.action()
    async def clicked(ctx, amount):
        await ctx.reply(f"clicked {amount}")

    @bot.on("/start")
    async def start(ctx):
        await ctx.reply("Hi!", bot.panel().callback("Click", clicked, 1))
        return True

    asyncio.run(bot.start_polling())
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Coroutine, Optional

from bot.context import Context
from bot.dispatcher import DEFAULT_MAX_CHAIN_DEPTH, UpdateDispatcher
from bot.keyboard import KeyboardBuilder
from bot.messages import MessageSender, as_message
from bot.pagination import Pagination
from bot.transport import LongPoller, create_webhook_app
from core.actions import ActionRef, ActionRegistry, name_of
from core.codec import CallbackCodec
from core.errors import ErrorPolicy, OptionsError
from core.handlers import HandlerDescriptor, HandlerRegistry
from core.limiter import RateLimiter
from core.logger import SwitchboardLogger
from core.states import StateStore
from sdk.client import DEFAULT_API_URL, TelegramClient

logger = SwitchboardLogger.get_logger()

PARSE_MODES: tuple[Optional[str], ...] = (None, "HTML", "MarkdownV2", "Markdown")

Func = Callable[..., Any]


def parse_bot_id(token: str) -> int:
    """Return the numeric bot id from a ``<id>:<secret>`` token.

    Raises:
        OptionsError: The token is empty or malformed.
    """
    if not token or not isinstance(token, str):
        raise OptionsError("Wrong token")
    head, sep, secret = token.partition(":")
    if not sep or not secret or not head.isdigit():
        raise OptionsError("Wrong token: expected '<bot id>:<secret>'")
    return int(head)


class TelegramBot:
    """Composed Telegram bot service.

    Args:
        token: Bot API token ``<id>:<secret>``.
        client: Outbound Bot API client (built from *token* if omitted).
        codec: Callback token codec (signed with *callback_secret*, or the
            token, if omitted).
        actions: Action registry.
        handlers: Handler registry.
        states: Per-user state store.
        limiter: Optional rate limiter.
        policy: Suppressible-error policy.
        update_timeout: Upper bound in seconds for processing one update.
        max_chain_depth: Limit for handler return-value chains.
        state_sweep_interval: Seconds between state cache sweeps.
    """

    def __init__(
        self,
        token: str,
        *,
        client: Optional[TelegramClient] = None,
        codec: Optional[CallbackCodec] = None,
        actions: Optional[ActionRegistry] = None,
        handlers: Optional[HandlerRegistry] = None,
        states: Optional[StateStore] = None,
        limiter: Optional[RateLimiter] = None,
        policy: Optional[ErrorPolicy] = None,
        api_url: str = DEFAULT_API_URL,
        sign_callbacks: bool = True,
        sign_length: int = CallbackCodec.DEFAULT_SIGN_LENGTH,
        callback_secret: Optional[str] = None,
        update_timeout: Optional[float] = None,
        max_chain_depth: int = DEFAULT_MAX_CHAIN_DEPTH,
        state_sweep_interval: float = 1.0,
    ) -> None:
        self.id = parse_bot_id(token)
        self.token = token
        self.client = client if client is not None else TelegramClient.for_token(token, api_url)
        self.codec = codec if codec is not None else CallbackCodec(
            callback_secret or token, sign=sign_callbacks, sign_length=sign_length
        )
        self.actions = actions if actions is not None else ActionRegistry()
        self.handlers = handlers if handlers is not None else HandlerRegistry()
        self.states = states if states is not None else StateStore()
        self.policy = policy if policy is not None else ErrorPolicy()
        self.messages = MessageSender(self.client.acall, self.policy)
        self.dispatcher = UpdateDispatcher(
            self.actions,
            self.handlers,
            self.codec,
            self.call,
            self.context,
            timeout=update_timeout,
            max_chain_depth=max_chain_depth,
        )
        self.dispatcher.limiter = limiter
        self.state_sweep_interval = state_sweep_interval
        self.paginations: dict[str, Pagination] = {}
        self._tasks: set[asyncio.Task] = set()
        self._poller: Optional[LongPoller] = None
        self._running = False

    def __repr__(self) -> str:
        return f"TelegramBot(id={self.id}, handlers={len(self.handlers)}, started={self.started})"

    # ── composition helpers ──────────────────────────────────────────────

    def context(self, update: dict, kind: str) -> Context:
        return Context(self, update, kind)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run *coro* as a background task, keeping a strong reference to it."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    @property
    def limiter(self) -> Optional[RateLimiter]:
        return self.dispatcher.limiter

    @property
    def states_enabled(self) -> bool:
        return self.dispatcher.states_enabled

    @property
    def parse_mode(self) -> Optional[str]:
        return self.messages.parse_mode

    @property
    def started(self) -> bool:
        """True once the bot served updates; anonymous actions are frozen from then on."""
        return self.actions.started

    @property
    def running(self) -> bool:
        return self._running

    # ── handler registration ─────────────────────────────────────────────

    def on(self, match: str | re.Pattern[str], func: Optional[Func] = None) -> Any:
        """Subscribe a handler with the shorthand grammar (see :meth:`HandlerRegistry.on`).

        Works as a plain call or as a decorator::

            @bot.on("photo")
            async def got_photo(ctx): ...
        """
        return self._register_or_decorate(lambda f: self.handlers.on(match, f), func)

    def always_on(self, match: str | re.Pattern[str], func: Optional[Func] = None) -> Any:
        """Like :meth:`on`, but the handler ignores the allow-set."""
        return self._register_or_decorate(lambda f: self.handlers.on(match, f, always=True), func)

    def on_update(self, update: str, func: Optional[Func] = None) -> Any:
        return self._register_or_decorate(lambda f: self.handlers.on_update(update, f), func)

    def text(self, text: str | re.Pattern[str], func: Optional[Func] = None) -> Any:
        """Subscribe to messages whose whole text equals *text*."""
        return self._register_or_decorate(lambda f: self.handlers.text(text, f), func)

    def use(self, func: Func) -> Func:
        self.handlers.use(func)
        return func

    def use_always(self, func: Func) -> Func:
        self.handlers.use_always(func)
        return func

    def on_any_update(self, func: Callable[[dict], Any]) -> Callable[[dict], Any]:
        """Observer called with every raw update after it was processed."""
        self.dispatcher.observer = func
        return func

    @staticmethod
    def _register_or_decorate(register: Callable[[Func], HandlerDescriptor], func: Optional[Func]) -> Any:
        if func is not None:
            return register(func)

        def decorator(f: Func) -> Func:
            register(f)
            return f
        return decorator

    def describe_handlers(self) -> list[dict[str, Any]]:
        return self.handlers.describe()

    # ── actions and callback data ────────────────────────────────────────

    def register(self, func: Func, *more: Func, name: Optional[str] = None) -> ActionRef:
        return self.actions.register(func, *more, name=name)

    def action(self, name: Optional[str] = None) -> Callable[[Func], Func]:
        return self.actions.action(name)

    def has_action(self, action: ActionRef | str | Func) -> bool:
        return self.actions.has(action)

    def callback_data(self, action: ActionRef | str | Func, *args: Any) -> str:
        """Encode a callback token for *action* called with *args*."""
        name = name_of(action) if isinstance(action, (ActionRef, str)) else self.actions.ensure(action).name
        return self.codec.encode(name, args)

    def keyboard(self) -> KeyboardBuilder:
        """Start a reply keyboard."""
        return KeyboardBuilder(self, inline=False)

    def panel(self) -> KeyboardBuilder:
        """Start an inline keyboard."""
        return KeyboardBuilder(self, inline=True)

    def pagination(self, name: str) -> Pagination:
        return Pagination(self, name)

    # ── behaviour switches ───────────────────────────────────────────────

    def limit(self, seconds: float, on_limited: Optional[Func] = None) -> RateLimiter:
        """Allow one update per *seconds* per user; *on_limited* may veto."""
        if self.dispatcher.limiter is None:
            self.dispatcher.limiter = RateLimiter(seconds, on_limited)
            if self._running:
                self.dispatcher.limiter.start()
        else:
            self.dispatcher.limiter.configure(seconds, on_limited)
        return self.dispatcher.limiter

    def set_parser(self, name: Optional[str]) -> None:
        """Set the parse mode (``"HTML"``, ``"MarkdownV2"``, ``"Markdown"`` or ``None``)."""
        if name not in PARSE_MODES:
            raise OptionsError(f"Unknown parse mode {name!r}")
        self.messages.parse_mode = name

    def dont_raise(self, *errors: type[BaseException]) -> None:
        self.policy.dont_raise(*errors)

    def disable_states(self) -> None:
        self.dispatcher.states_enabled = False

    # ── lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Freeze anonymous action registration and start background sweeps."""
        if self._running:
            return
        self._running = True
        self.actions.mark_started()
        if self.states_enabled:
            self.states.start(self.state_sweep_interval)
        if self.limiter is not None:
            self.limiter.start()
        logger.info("Bot started", extra={"bot_id": self.id, "handlers": len(self.handlers), "actions": len(self.actions.names())})

    async def stop(self) -> None:
        """Stop polling and sweeps, then wait for in-flight updates."""
        self._running = False
        if self._poller is not None:
            self._poller.stop()
        await self.states.stop()
        if self.limiter is not None:
            await self.limiter.stop()
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Bot stopped", extra={"bot_id": self.id})

    async def process_update(self, update: dict) -> None:
        await self.dispatcher.process(update)

    async def start_polling(
        self,
        poll_timeout: int = 30,
        allowed_updates: Optional[list[str]] = None,
        receive_all: bool = False,
        on_update: Optional[Callable[[dict], Any]] = None,
    ) -> None:
        """Start the bot and long-poll until cancelled or :meth:`stop` is called."""
        if on_update is not None:
            self.on_any_update(on_update)
        await self.start()
        self._poller = LongPoller(self, poll_timeout=poll_timeout, allowed_updates=allowed_updates, receive_all=receive_all)
        try:
            await self._poller.run()
        finally:
            self._poller = None
            await self.stop()

    def webhook_app(self, secret_token: Optional[str] = None, path: str = "/"):
        """Return a FastAPI app serving this bot's webhook endpoint."""
        return create_webhook_app(self, secret_token=secret_token, path=path)

    async def ensure_webhook(self, url: str, **params: Any) -> Optional[dict]:
        """Register *url* as the webhook unless it already is.

        Returns the ``setWebhook`` reply, or ``None`` when nothing changed.
        """
        info = await asyncio.to_thread(self.client.get_webhook_info)
        if info is not None and info.url == url:
            logger.info("Webhook already registered", extra={"url": url})
            return None
        result = await asyncio.to_thread(self.client.set_webhook, url, **params)
        logger.info("Webhook registered", extra={"url": url, "api_response": result})
        return result

    # ── outbound ─────────────────────────────────────────────────────────

    async def call(self, method: str, params: Optional[dict] = None, files: Optional[dict] = None) -> dict:
        """Call any Bot API method; formatting errors follow the error policy."""
        return await self.messages.call(method, params, files)

    async def send(self, chat_id: int, content: Any = None, keyboard: Any = None, **options: Any) -> Optional[dict]:
        return await self.messages.send(chat_id, as_message(content, keyboard, **options))

    async def me(self) -> dict:
        response = await self.call("getMe")
        if not response.get("ok"):
            return {}
        return response.get("result") or {}

    async def is_admin(self, chat: Any, user: Any = None) -> bool:
        """Return ``True`` if *user* administers the group *chat*.

        Both arguments accept ids or Bot API objects; a :class:`Context` may
        be passed alone.  Private chats always yield ``False``.
        """
        if user is None and isinstance(chat, Context):
            chat, user = chat.chat, chat.from_user
        chat_id = chat.get("id") if isinstance(chat, dict) else chat
        user_id = user.get("id") if isinstance(user, dict) else user
        if chat_id is None or user_id is None:
            logger.warning("is_admin() could not extract chat or user id")
            return False
        chat_id, user_id = int(chat_id), int(user_id)
        if user_id < 0:
            chat_id, user_id = user_id, chat_id
        if chat_id >= 0:
            logger.warning("is_admin() can't check privileges in private chats", extra={"chat_id": chat_id})
            return False
        response = await self.call("getChatMember", {"chat_id": chat_id, "user_id": user_id})
        if not response.get("ok"):
            return False
        return (response.get("result") or {}).get("status") in ("administrator", "creator")
