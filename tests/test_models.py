"""Tests for the Pydantic models in sdk.models."""

import sys
import os

import pytest
from pydantic import ValidationError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sdk.models import (
    ApiResponse,
    CallbackQuery,
    InlineKeyboardMarkup,
    Message,
    ReplyKeyboardMarkup,
    Update,
    User,
)


MESSAGE = {
    "message_id": 1,
    "date": 1700000000,
    "chat": {"id": 42, "type": "private"},
    "from": {"id": 42, "is_bot": False, "first_name": "Ann"},
    "text": "hi",
}


# ── Update ───────────────────────────────────────────────────────────────────


class TestUpdate:
    """Validate update parsing and kind detection."""

    def test_message_kind(self) -> None:
        update = Update.model_validate({"update_id": 1, "message": MESSAGE})
        assert update.kind == "message"
        assert update.message.from_field.id == 42

    def test_callback_kind(self) -> None:
        update = Update.model_validate({
            "update_id": 2,
            "callback_query": {"id": "c", "from": {"id": 1}, "data": "x"},
        })
        assert update.kind == "callback_query"
        assert update.callback_query.data == "x"

    def test_unmodelled_kind_kept_as_dict(self) -> None:
        update = Update.model_validate({"update_id": 3, "chat_boost": {"chat": {"id": -1}}})
        assert update.kind == "chat_boost"
        assert update.payload == {"chat": {"id": -1}}

    def test_payload_uses_api_field_names(self) -> None:
        update = Update.model_validate({"update_id": 1, "message": MESSAGE})
        assert update.payload["from"]["id"] == 42
        assert update.payload["text"] == "hi"

    def test_no_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Update.model_validate({"update_id": 4})

    def test_two_kinds_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Update.model_validate({"update_id": 5, "message": MESSAGE, "edited_message": MESSAGE})

    def test_missing_update_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Update.model_validate({"message": MESSAGE})

    def test_bad_message_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Update.model_validate({"update_id": 6, "message": {"text": "no chat"}})


# ── Objects ──────────────────────────────────────────────────────────────────


class TestObjects:
    def test_message_alias(self) -> None:
        msg = Message.model_validate(MESSAGE)
        assert msg.from_field == User(id=42, first_name="Ann")
        assert msg.model_dump(by_alias=True, exclude_none=True)["from"]["id"] == 42

    def test_callback_requires_sender(self) -> None:
        with pytest.raises(ValidationError):
            CallbackQuery.model_validate({"id": "c"})

    def test_keyboards_dump(self) -> None:
        inline = InlineKeyboardMarkup.model_validate({"inline_keyboard": [[{"text": "a", "url": "https://x.y"}]]})
        assert inline.model_dump(exclude_none=True) == {"inline_keyboard": [[{"text": "a", "url": "https://x.y"}]]}
        reply = ReplyKeyboardMarkup(keyboard=[[{"text": "Menu"}]], resize_keyboard=True)
        assert reply.model_dump(exclude_none=True)["resize_keyboard"] is True

    def test_api_response(self) -> None:
        resp = ApiResponse.model_validate({"ok": False, "error_code": 400, "description": "Bad Request"})
        assert not resp.ok
        assert resp.result is None
