"""Pydantic models for the parts of the Telegram Bot API the dispatcher reads.

Only the objects the bot layer inspects are modelled field by field; every
model ignores unknown fields, and :class:`Update` keeps unmodelled update
kinds (``chat_boost``, ``message_reaction`` …) as plain dicts.
"""

from __future__ import annotations

from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class User(BaseModel):
    """This object represents a Telegram user or bot."""

    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None

    model_config = {"populate_by_name": True}


class Chat(BaseModel):
    """This object represents a chat."""

    id: int
    type: str
    title: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None

    model_config = {"populate_by_name": True}


class PhotoSize(BaseModel):
    """One size of a photo or a file / sticker thumbnail."""

    file_id: str
    file_unique_id: str
    width: int
    height: int
    file_size: Optional[int] = None


class Document(BaseModel):
    """A general file (as opposed to photos, voice messages and audio files)."""

    file_id: str
    file_unique_id: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class Message(BaseModel):
    """This object represents a message."""

    message_id: int
    date: int
    chat: Chat
    from_field: Optional[User] = Field(None, alias="from")
    sender_chat: Optional[Chat] = None
    reply_to_message: Optional["Message"] = None
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: Optional[List[PhotoSize]] = None
    document: Optional[Document] = None

    model_config = {"populate_by_name": True}


class CallbackQuery(BaseModel):
    """An incoming callback query from an inline keyboard button."""

    id: str
    from_field: User = Field(..., alias="from")
    chat_instance: str = ""
    message: Optional[Message] = None
    inline_message_id: Optional[str] = None
    data: Optional[str] = None

    model_config = {"populate_by_name": True}


class InlineQuery(BaseModel):
    """An incoming inline query."""

    id: str
    from_field: User = Field(..., alias="from")
    query: str = ""
    offset: str = ""
    chat_type: Optional[str] = None

    model_config = {"populate_by_name": True}


class ChosenInlineResult(BaseModel):
    """A result of an inline query that was chosen by the user."""

    result_id: str
    from_field: User = Field(..., alias="from")
    query: str = ""
    inline_message_id: Optional[str] = None

    model_config = {"populate_by_name": True}


class Update(BaseModel):
    """An incoming update.  Exactly **one** kind besides ``update_id`` is present.

    Kinds without a dedicated model are accepted as extra fields and kept as
    raw dicts.
    """

    update_id: int
    message: Optional[Message] = None
    edited_message: Optional[Message] = None
    channel_post: Optional[Message] = None
    edited_channel_post: Optional[Message] = None
    inline_query: Optional[InlineQuery] = None
    chosen_inline_result: Optional[ChosenInlineResult] = None
    callback_query: Optional[CallbackQuery] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _exactly_one_kind(cls, data: Any) -> Any:
        if isinstance(data, dict):
            kinds = [k for k, v in data.items() if k != "update_id" and v is not None]
            if len(kinds) != 1:
                raise ValueError(f"Update must carry exactly one kind, got {kinds or 'none'}")
        return data

    @property
    def kind(self) -> str:
        """Name of the populated update kind, e.g. ``"callback_query"``."""
        for name in type(self).model_fields:
            if name != "update_id" and getattr(self, name) is not None:
                return name
        extras = self.model_extra or {}
        return next(k for k, v in extras.items() if v is not None)

    @property
    def payload(self) -> dict:
        """The populated kind as a plain dict (Bot API field names)."""
        value = getattr(self, self.kind, None)
        if isinstance(value, BaseModel):
            return value.model_dump(by_alias=True, exclude_none=True)
        return value if value is not None else (self.model_extra or {})[self.kind]


class InlineKeyboardButton(BaseModel):
    """One button of an inline keyboard."""

    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


class InlineKeyboardMarkup(BaseModel):
    """An inline keyboard that appears right next to the message it belongs to."""

    inline_keyboard: List[List[InlineKeyboardButton]]


class KeyboardButton(BaseModel):
    """One button of the reply keyboard."""

    text: str


class ReplyKeyboardMarkup(BaseModel):
    """A custom keyboard with reply options."""

    keyboard: List[List[KeyboardButton]]
    resize_keyboard: Optional[bool] = None


ReplyMarkup = Union[InlineKeyboardMarkup, ReplyKeyboardMarkup]


class WebhookInfo(BaseModel):
    """Contains information about the current status of a webhook."""

    url: str
    has_custom_certificate: bool = False
    pending_update_count: int = 0
    last_error_date: Optional[int] = None
    last_error_message: Optional[str] = None
    max_connections: Optional[int] = None
    allowed_updates: Optional[List[str]] = None


class ApiResponse(BaseModel):
    """The ``ok`` / ``result`` / ``description`` envelope of every Bot API reply."""

    ok: bool
    result: Any = None
    description: Optional[str] = None
    error_code: Optional[int] = None
