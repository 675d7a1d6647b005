"""Per-update context handed to every handler and action.

A :class:`Context` wraps the raw update dict together with the owning
:class:`~bot.app.TelegramBot`.  Handlers read the sender, chat and text from
it, keep per-user state through it and reply through it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bot.messages import as_message
from core.actions import ActionRef, name_of
from core.errors import CallbackNotFound
from core.identity import get_identity
from core.logger import SwitchboardLogger

if TYPE_CHECKING:
    from bot.app import TelegramBot

logger = SwitchboardLogger.get_logger()

# Bot API methods that accept a top-level ``parse_mode``.
PARSE_MODE_METHODS: frozenset[str] = frozenset({
    "sendMessage", "copyMessage", "sendPhoto", "sendAudio", "sendDocument",
    "sendVideo", "sendAnimation", "sendVoice", "sendVideoNote", "sendPaidMedia",
    "sendMediaGroup", "postStory", "editStory",
    "editMessageText", "editMessageCaption",
})

# Content keys checked, in order, by :attr:`Context.type`.
_CONTENT_TYPES: tuple[str, ...] = (
    "text", "photo", "video", "document", "audio", "voice", "sticker",
    "animation", "video_note", "contact", "location", "venue", "poll", "dice",
)


class Context:
    """View over one update.

    Attributes:
        kind: Update kind, e.g. ``"message"`` or ``"callback_query"``.
        raw: The whole update dict as received.
        update: The payload of that kind (``raw[kind]``).
        bot: Owning bot service.
        user_id: Sender id used for state and rate limiting, or ``None``.
    """

    def __init__(self, bot: "TelegramBot", raw: dict, kind: str) -> None:
        self.bot = bot
        self.raw = raw
        self.kind = kind
        self.update: dict = raw[kind] if isinstance(raw.get(kind), dict) else {}
        self.user_id: int | None = get_identity(kind, self.update)
        self._state: dict | None = None
        self.callback_answer: dict | None = None
        self.inline_answer: dict | None = None

    def __repr__(self) -> str:
        return f"Context(kind={self.kind!r}, update_id={self.raw.get('update_id')!r}, user_id={self.user_id!r})"

    # ── update accessors ─────────────────────────────────────────────────

    @property
    def update_id(self) -> int | None:
        return self.raw.get("update_id")

    @property
    def text(self) -> str | None:
        """Message text, falling back to the media caption."""
        return self.update.get("text") or self.update.get("caption")

    @property
    def from_user(self) -> dict | None:
        return self.update.get("from")

    @property
    def chat(self) -> dict | None:
        chat = self.update.get("chat")
        if chat is None:
            chat = (self.update.get("message") or {}).get("chat")
        return chat

    @property
    def chat_id(self) -> int | None:
        chat = self.chat
        return chat.get("id") if chat else None

    @property
    def msg_id(self) -> int | None:
        return self.update.get("message_id") or (self.update.get("message") or {}).get("message_id")

    @property
    def is_callback(self) -> bool:
        return self.kind == "callback_query"

    @property
    def is_group(self) -> bool:
        chat_id = self.chat_id
        return chat_id is not None and chat_id < 0

    @property
    def data(self) -> str | None:
        """Callback data, or the deep-link payload of ``/start <payload>``."""
        if self.is_callback:
            return self.update.get("data")
        text = self.text
        if text and text.startswith("/start"):
            return text[7:]
        return None

    @property
    def type(self) -> str:
        """Content kind of the message (``"text"``, ``"photo"`` …) or ``"unknown"``."""
        message = self.update.get("message") or self.update
        for key in _CONTENT_TYPES:
            if message.get(key):
                return key
        return "unknown"

    def media(self, key: str) -> Any:
        """Return the *key* field of the message (e.g. ``"photo"``), if any."""
        return (self.update.get("message") or {}).get(key) or self.update.get(key)

    # ── state ────────────────────────────────────────────────────────────

    @property
    def state(self) -> dict:
        """Cached state of the sender; ``{}`` when nothing was loaded."""
        return self._state or {}

    @state.setter
    def state(self, value: dict) -> None:
        """Replace the state and schedule the save without awaiting it.

        Use :meth:`set_state` to observe the save result.
        """
        self._state = value
        if self.user_id is not None:
            self.bot.spawn(self.bot.states.set(self.user_id, value))

    async def set_state(self, value: dict) -> Any:
        """Replace the state and return whatever the store's save returned."""
        self._state = value
        if self.user_id is None:
            logger.warning("State change ignored: update has no sender", extra={"update_id": self.update_id})
            return None
        return await self.bot.states.set(self.user_id, value)

    async def load_state(self) -> dict:
        if self.user_id is None:
            self._state = {}
        else:
            self._state = await self.bot.states.get(self.user_id)
        return self.state

    async def input(self, action: ActionRef | str | Any, allowed: str | list[str] | None = None) -> Any:
        """Route the user's next free-form update to *action*.

        *allowed* optionally narrows the handlers and actions permitted until
        the state is reset.

        Raises:
            CallbackNotFound: *action* is not registered.
        """
        if not action:
            raise ValueError("No action given to handle the awaited input")
        if not self.bot.has_action(action):
            raise CallbackNotFound(f"Action must be registered before awaiting input: {name_of(action)}")
        new_state = dict(self.state)
        if allowed:
            new_state["allow"] = [allowed] if isinstance(allowed, str) else list(allowed)
        new_state["input"] = name_of(action)
        return await self.set_state(new_state)

    async def reset(self) -> Any:
        return await self.set_state({})

    # ── outbound shortcuts ───────────────────────────────────────────────

    async def reply(self, content: Any = None, keyboard: Any = None, **options: Any) -> dict | None:
        """Send a new message to the current chat.

        *content* is a string, a :class:`~bot.messages.TextMessage` /
        :class:`~bot.messages.MediaMessage`, or a keyboard on its own.
        """
        chat_id = self.chat_id
        if chat_id is None:
            logger.warning("reply() without a chat", extra={"update_id": self.update_id, "kind": self.kind})
            return None
        return await self.bot.send(chat_id, content, keyboard, **options)

    async def edit(self, content: Any = None, keyboard: Any = None, **options: Any) -> dict | None:
        """Edit the message a callback button belongs to.

        Text edits become caption edits when the original message has no text.
        """
        message = self.update.get("message") if self.is_callback else None
        if not message:
            logger.warning("edit() can only be used in callbacks", extra={"update_id": self.update_id, "kind": self.kind})
            return None
        return await self.bot.messages.edit(
            message["chat"]["id"],
            message["message_id"],
            as_message(content, keyboard, **options),
            caption="text" not in message,
        )

    async def respond(self, content: Any = None, keyboard: Any = None, **options: Any) -> dict | None:
        """Edit the message for callbacks, reply otherwise."""
        if self.is_callback:
            return await self.edit(content, keyboard, **options)
        return await self.reply(content, keyboard, **options)

    def answer(self, text: str, alert: bool = False, url: str | None = None, **options: Any) -> bool:
        """Attach a toast (or alert) to the callback acknowledgement."""
        if not self.is_callback:
            logger.warning("answer() can only be used in callbacks", extra={"update_id": self.update_id})
            return True
        answer: dict = {"text": text, **options}
        if alert:
            answer["show_alert"] = True
        if url:
            answer["url"] = url
        self.callback_answer = answer
        return True

    def answer_inline(
        self,
        results: list,
        cache_time: int = 1,
        is_personal: bool = True,
        next_offset: str = "",
        **options: Any,
    ) -> bool:
        """Set the results sent back for an inline query once handlers finish."""
        if self.kind != "inline_query":
            logger.warning("answer_inline() can only be used for inline queries", extra={"update_id": self.update_id})
            return True
        self.inline_answer = {
            "results": results,
            "cache_time": cache_time,
            "is_personal": is_personal,
            "next_offset": next_offset,
            **options,
        }
        return True

    async def react(self, emoji: str, big: bool = False) -> dict | None:
        if self.is_callback:
            logger.warning("react() can't be used for callback queries", extra={"update_id": self.update_id})
            return None
        chat_id, message_id = self.chat_id, self.msg_id
        if not chat_id or not message_id:
            logger.warning("react() found no chat or message id", extra={"update_id": self.update_id})
            return None
        return await self.bot.messages.react(chat_id, message_id, emoji, big)

    async def delete(self) -> dict | None:
        """Delete the message a callback button belongs to."""
        if not self.is_callback:
            logger.warning("delete() can only be used in callbacks", extra={"update_id": self.update_id})
            return None
        chat_id, message_id = self.chat_id, self.msg_id
        if not chat_id or not message_id:
            return None
        return await self.bot.call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def call(self, method: str, params: dict | None = None) -> dict:
        """Call any Bot API *method*, filling ``chat_id`` and the parse mode."""
        body: dict = {}
        if self.chat_id:
            body["chat_id"] = self.chat_id
        if self.bot.parse_mode is not None and method in PARSE_MODE_METHODS:
            body["parse_mode"] = self.bot.parse_mode
        body.update(params or {})
        return await self.bot.call(method, body)

    async def is_admin(self) -> bool:
        return await self.bot.is_admin(self.chat, self.from_user)
