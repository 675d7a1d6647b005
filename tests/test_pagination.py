"""Tests for bot.pagination — paged inline keyboards."""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from bot import Pagination, TelegramBot, normalize
from bot.pagination import PAGE_ACTION

ITEMS = [f"item{i}" for i in range(25)]


def make_bot():
    client = MagicMock()
    client.acall = AsyncMock(return_value={"ok": True, "result": {"message_id": 5}})
    return TelegramBot("123:ABC", client=client), client


def message_update():
    return {
        "update_id": 1,
        "message": {
            "message_id": 10,
            "date": 0,
            "chat": {"id": 42, "type": "private"},
            "from": {"id": 42, "first_name": "Ann"},
            "text": "/items",
        },
    }


def callback_update(data):
    return {
        "update_id": 2,
        "callback_query": {
            "id": "cb",
            "from": {"id": 42, "first_name": "Ann"},
            "data": data,
            "message": {"message_id": 10, "date": 0, "chat": {"id": 42, "type": "private"}, "text": "page"},
        },
    }


def item_rows(ctx, items, page):
    return [[{"text": item, "callback_data": " "}] for item in items]


def nav_args(bot, row):
    return [bot.codec.decode(button["callback_data"]).args for button in row if button["callback_data"] != " "]


# ── normalize ────────────────────────────────────────────────────────────────


class TestNormalize:
    def test_in_range(self) -> None:
        assert normalize(ITEMS, 1, 10) == 1

    def test_negative_wraps_to_last(self) -> None:
        assert normalize(ITEMS, -1, 10) == 2
        assert normalize(0, -1, 10) == 0

    def test_past_end_wraps_to_first(self) -> None:
        assert normalize(25, 3, 10) == 0


# ── Pagination ───────────────────────────────────────────────────────────────


class TestPagination:
    """Validate rendering and navigation of one pagination."""

    def test_registers_shared_action(self) -> None:
        bot, _ = make_bot()
        Pagination(bot, "a")
        Pagination(bot, "b")
        assert bot.has_action(PAGE_ACTION)
        assert set(bot.paginations) == {"a", "b"}

    def test_invalid_name_and_size(self) -> None:
        bot, _ = make_bot()
        with pytest.raises(ValueError):
            Pagination(bot, "two words")
        with pytest.raises(ValueError):
            bot.pagination("ok").page_size(0)

    @pytest.mark.asyncio
    async def test_first_page_wraps_back_to_last(self) -> None:
        bot, client = make_bot()
        pages = bot.pagination("items").data(lambda ctx, page: ITEMS).keys(item_rows).page_size(10)
        ctx = bot.context(message_update(), "message")
        await pages.open(ctx, 0)

        method, body, _ = client.acall.call_args.args
        assert method == "sendMessage"
        rows = body["reply_markup"]["inline_keyboard"]
        assert [row[0]["text"] for row in rows[:-1]] == ITEMS[:10]
        assert nav_args(bot, rows[-1]) == [("items", "2"), ("items", "1")]

    @pytest.mark.asyncio
    async def test_last_page_wraps_forward_to_first(self) -> None:
        bot, client = make_bot()
        pages = bot.pagination("items").data(lambda ctx, page: ITEMS).keys(item_rows).page_size(10).middle("·")
        ctx = bot.context(message_update(), "message")
        await pages.open(ctx, 2)

        rows = client.acall.call_args.args[1]["reply_markup"]["inline_keyboard"]
        assert len(rows) == 6
        assert rows[-1][1] == {"text": "·", "callback_data": " "}
        assert nav_args(bot, rows[-1]) == [("items", "1"), ("items", "0")]

    @pytest.mark.asyncio
    async def test_data_with_total_and_text(self) -> None:
        bot, client = make_bot()
        data = AsyncMock(return_value=(["x", "y"], 40))
        pages = (
            bot.pagination("remote")
            .data(data)
            .keys(item_rows)
            .text(lambda ctx, items, page, kind: f"page {page} of {kind}")
            .after_keys(lambda ctx, items, page, kind: [[{"text": "Close", "callback_data": " "}]])
            .page_size(2)
        )
        ctx = bot.context(message_update(), "message")
        await pages.open(ctx, 0, "books")

        data.assert_awaited_once_with(ctx, 0, "books")
        body = client.acall.call_args.args[1]
        assert body["text"] == "page 0 of books"
        rows = body["reply_markup"]["inline_keyboard"]
        assert [row[0]["text"] for row in rows] == ["x", "y", "<", "Close"]
        assert nav_args(bot, rows[2]) == [("remote", "19", "books"), ("remote", "1", "books")]

    @pytest.mark.asyncio
    async def test_builder_keys(self) -> None:
        bot, client = make_bot()
        pages = (
            bot.pagination("b")
            .data(lambda ctx, page: ITEMS)
            .keys(lambda ctx, items, page: bot.panel().text(items[0]))
            .back("Prev")
            .forth("Next")
        )
        await pages.open(bot.context(message_update(), "message"), 0)
        rows = client.acall.call_args.args[1]["reply_markup"]["inline_keyboard"]
        assert [button["text"] for button in rows[-1]] == ["Prev", "Next"]

    @pytest.mark.asyncio
    async def test_incomplete_pagination_does_nothing(self) -> None:
        bot, client = make_bot()
        assert await bot.pagination("empty").open(bot.context(message_update(), "message")) is True
        client.acall.assert_not_called()

    @pytest.mark.asyncio
    async def test_navigation_button_edits_message(self) -> None:
        bot, client = make_bot()
        data = MagicMock(return_value=ITEMS)
        pages = bot.pagination("items").data(data).keys(item_rows)
        button = pages.button("Next", 1)

        await bot.process_update(callback_update(button["callback_data"]))

        assert data.call_args.args[1] == 1
        assert [c.args[0] for c in client.acall.call_args_list] == ["editMessageReplyMarkup", "answerCallbackQuery"]

    @pytest.mark.asyncio
    async def test_unknown_pagination_name(self) -> None:
        bot, client = make_bot()
        bot.pagination("items")
        await bot.process_update(callback_update(bot.codec.encode(PAGE_ACTION, ["ghost", 0])))
        assert [c.args[0] for c in client.acall.call_args_list] == ["answerCallbackQuery"]
