"""Outgoing message variants and the sender that turns them into Bot API calls.

Call sites pass loose arguments (a string, a keyboard, a media message);
:func:`as_message` normalises them once into either a :class:`TextMessage`
or a :class:`MediaMessage`, and :class:`MessageSender` picks the Bot API
method from the variant.
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel

from core.errors import ErrorPolicy, MediaFileNotFound, ParserError
from core.logger import SwitchboardLogger

logger = SwitchboardLogger.get_logger()

# Fragment the Bot API puts in ``description`` when formatting is broken.
_PARSE_ERROR_MARKER = "can't parse entities"

MEDIA_KINDS: frozenset[str] = frozenset({"photo", "audio", "document", "animation", "voice", "video", "video_note"})


@dataclasses.dataclass(frozen=True)
class TextMessage:
    """A plain text message.  ``text=None`` means "keyboard only"."""

    text: Optional[str] = None
    keyboard: Any = None


@dataclasses.dataclass(frozen=True)
class MediaMessage:
    """A photo, document, audio … given by file id, URL or local path."""

    kind: str
    source: str
    caption: Optional[str] = None
    keyboard: Any = None
    spoiler: bool = False

    def __post_init__(self) -> None:
        if self.kind not in MEDIA_KINDS:
            raise ValueError(f"Unsupported media kind {self.kind!r}")

    @property
    def is_local(self) -> bool:
        return self.source.startswith((".", "/"))


OutgoingMessage = Union[TextMessage, MediaMessage]


def image(source: str, caption: Optional[str] = None, keyboard: Any = None, spoiler: bool = False) -> MediaMessage:
    return MediaMessage("photo", source, caption=caption, keyboard=keyboard, spoiler=spoiler)


def _is_keyboard(value: Any) -> bool:
    return hasattr(value, "build") or isinstance(value, (list, BaseModel)) or (
        isinstance(value, dict) and any(k in value for k in ("inline_keyboard", "keyboard", "remove_keyboard", "force_reply"))
    )


def as_message(content: Any = None, keyboard: Any = None, **options: Any) -> OutgoingMessage:
    """Normalise call-site arguments into one outgoing message variant.

    * a message variant is returned as-is (with *keyboard* attached if given);
    * a string becomes a :class:`TextMessage` (*options* may carry ``file``
      as ``{"photo": path}`` to turn it into a caption);
    * a keyboard on its own becomes a keyboard-only :class:`TextMessage`.
    """
    if isinstance(content, (TextMessage, MediaMessage)):
        return dataclasses.replace(content, keyboard=keyboard) if keyboard is not None else content

    if content is not None and not isinstance(content, str) and _is_keyboard(content) and keyboard is None:
        content, keyboard = None, content

    file = options.get("file")
    if file:
        kind, source = next(iter(file.items()))
        return MediaMessage(kind, source, caption=content, keyboard=keyboard, spoiler=bool(options.get("spoiler")))

    if content is not None and not isinstance(content, str):
        raise TypeError(f"Cannot send {type(content).__name__} as a message")
    return TextMessage(content, keyboard)


def resolve_markup(keyboard: Any) -> Optional[dict]:
    """Turn a builder, model, row list or dict into a ``reply_markup`` dict."""
    if keyboard is None:
        return None
    if hasattr(keyboard, "build"):
        return keyboard.build()
    if isinstance(keyboard, BaseModel):
        return keyboard.model_dump(exclude_none=True)
    if isinstance(keyboard, list):
        return {"inline_keyboard": keyboard}
    return keyboard


def _method_suffix(kind: str) -> str:
    return "".join(part.capitalize() for part in kind.split("_"))


CallFunc = Callable[..., Awaitable[Dict[str, Any]]]


class MessageSender:
    """Send, edit and react to messages through an async ``call`` function.

    Args:
        call: ``async (method, params, files=None) -> dict``, typically
            :meth:`sdk.client.TelegramClient.acall`.
        policy: Decides whether :class:`ParserError` and
            :class:`MediaFileNotFound` are raised or only logged.
    """

    def __init__(self, call: CallFunc, policy: ErrorPolicy, parse_mode: Optional[str] = None) -> None:
        self._call = call
        self.policy = policy
        self.parse_mode = parse_mode

    async def call(self, method: str, params: Optional[dict] = None, files: Optional[dict] = None) -> dict:
        """Call *method* and apply the parse-error policy to the reply.

        Raises:
            ParserError: Formatting was rejected and the error is not suppressed.
        """
        response = await self._call(method, params or {}, files)
        if not response.get("ok"):
            description = response.get("description") or ""
            if _PARSE_ERROR_MARKER in description:
                err = ParserError(description.split(": ", 2)[-1], response)
                if self.policy.should_raise(err):
                    raise err
                logger.warning("Message formatting rejected", extra={"api_endpoint": method, "error": description})
        return response

    async def _load_file(self, path: str) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(_read_bytes, path)
        except FileNotFoundError:
            err = MediaFileNotFound(path)
            if self.policy.should_raise(err):
                raise err from None
            logger.warning("Media file not found, message skipped", extra={"path": path})
            return None

    # ── send ─────────────────────────────────────────────────────────────

    async def send(self, chat_id: int, message: OutgoingMessage) -> Optional[dict]:
        """Send *message* to *chat_id*; ``None`` when a suppressed file is missing."""
        if isinstance(message, MediaMessage):
            return await self._send_media(chat_id, message)

        body: dict = {"chat_id": chat_id, "text": message.text or " "}
        markup = resolve_markup(message.keyboard)
        if markup is not None:
            body["reply_markup"] = markup
        if self.parse_mode:
            body["parse_mode"] = self.parse_mode
        return await self.call("sendMessage", body)

    async def _send_media(self, chat_id: int, message: MediaMessage) -> Optional[dict]:
        method = "send" + _method_suffix(message.kind)
        body: dict = {"chat_id": chat_id}
        if message.caption is not None:
            body["caption"] = message.caption
        markup = resolve_markup(message.keyboard)
        if markup is not None:
            body["reply_markup"] = markup
        if self.parse_mode:
            body["parse_mode"] = self.parse_mode
        if message.spoiler:
            body["has_spoiler"] = True

        if not message.is_local:
            body[message.kind] = message.source
            return await self.call(method, body)

        content = await self._load_file(message.source)
        if content is None:
            return None
        files = {message.kind: (os.path.basename(message.source), content)}
        return await self.call(method, body, files)

    # ── edit ─────────────────────────────────────────────────────────────

    async def edit(self, chat_id: int, message_id: int, message: OutgoingMessage, caption: bool = False) -> Optional[dict]:
        """Edit an existing message.

        * :class:`MediaMessage` → ``editMessageMedia``;
        * text with ``caption=True`` → ``editMessageCaption``;
        * text → ``editMessageText``;
        * no text → ``editMessageReplyMarkup``.
        """
        body: dict = {"chat_id": chat_id, "message_id": message_id}
        markup = resolve_markup(message.keyboard)
        if markup is not None:
            body["reply_markup"] = markup

        if isinstance(message, MediaMessage):
            return await self._edit_media(body, message)

        if message.text is None:
            return await self.call("editMessageReplyMarkup", body)

        if self.parse_mode:
            body["parse_mode"] = self.parse_mode
        if caption:
            body["caption"] = message.text
            return await self.call("editMessageCaption", body)
        body["text"] = message.text
        return await self.call("editMessageText", body)

    async def _edit_media(self, body: dict, message: MediaMessage) -> Optional[dict]:
        media: dict = {"type": message.kind}
        if message.caption is not None:
            media["caption"] = message.caption
        if self.parse_mode:
            media["parse_mode"] = self.parse_mode
        if message.spoiler:
            media["has_spoiler"] = True

        if not message.is_local:
            media["media"] = message.source
            body["media"] = media
            return await self.call("editMessageMedia", body)

        content = await self._load_file(message.source)
        if content is None:
            return None
        media["media"] = "attach://file"
        body["media"] = media
        return await self.call("editMessageMedia", body, {"file": (os.path.basename(message.source), content)})

    # ── reactions ────────────────────────────────────────────────────────

    async def react(self, chat_id: int, message_id: int, emoji: str, big: bool = False) -> dict:
        body: dict = {
            "chat_id": chat_id,
            "message_id": message_id,
            "reaction": [{"type": "emoji", "emoji": emoji}],
        }
        if big:
            body["is_big"] = True
        return await self.call("setMessageReaction", body)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()
