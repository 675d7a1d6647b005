"""Telegram Bot API SDK — the outbound ``call`` capability and Pydantic models.

Usage::

    from sdk import TelegramClient, APIException
    from sdk.models import Update, CallbackQuery

    client = TelegramClient.for_token(token)
    reply = client.call("sendMessage", {"chat_id": 42, "text": "hi"})
"""

from sdk.client import TelegramClient
from sdk.exceptions import APIException

__all__ = [
    "TelegramClient",
    "APIException",
]
