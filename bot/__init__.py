"""Telegram bot application layer: the bot service, context, keyboards and transports.

This package may import from ``core/`` and ``sdk/``; it never reads ``config``.
"""

from bot.app import TelegramBot, parse_bot_id
from bot.context import Context
from bot.dispatcher import UpdateDispatcher, allow_set
from bot.keyboard import KeyboardBuilder, callback_button, text_button, url_button
from bot.messages import MediaMessage, MessageSender, TextMessage, as_message, image
from bot.pagination import Pagination, normalize
from bot.transport import LongPoller, create_webhook_app

__all__ = [
    # Service
    "TelegramBot",
    "parse_bot_id",
    "Context",
    # Dispatch
    "UpdateDispatcher",
    "allow_set",
    # Keyboards
    "KeyboardBuilder",
    "callback_button",
    "text_button",
    "url_button",
    "Pagination",
    "normalize",
    # Messages
    "TextMessage",
    "MediaMessage",
    "MessageSender",
    "as_message",
    "image",
    # Transports
    "LongPoller",
    "create_webhook_app",
]
