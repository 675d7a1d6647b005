"""Paged inline keyboards with wrap-around navigation.

Every :class:`Pagination` of a bot shares the single ``_page`` action; its
navigation buttons encode ``_page <name> <page> [args…]`` so the pagination
is found again by name when a button is pressed.
"""

from __future__ import annotations

import inspect
import math
from typing import TYPE_CHECKING, Any, Callable, Sequence

from bot.keyboard import KeyboardBuilder, callback_button, text_button
from core.logger import SwitchboardLogger

if TYPE_CHECKING:
    from bot.app import TelegramBot
    from bot.context import Context

logger = SwitchboardLogger.get_logger()

PAGE_ACTION = "_page"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def normalize(items: Sequence[Any] | int, page: int, per_page: int) -> int:
    """Clamp *page* with wrap-around: below zero → last page, past the end → 0."""
    total = items if isinstance(items, int) else len(items)
    total_pages = math.ceil(total / per_page)
    if page < 0:
        return max(total_pages - 1, 0)
    if page >= total_pages:
        return 0
    return page


async def _page(ctx: "Context", name: Any = None, page: Any = 0, *args: Any) -> Any:
    """Shared navigation action: reopen pagination *name* at *page*."""
    if not isinstance(page, int) or isinstance(page, bool):
        return None
    entry = ctx.bot.paginations.get(str(name))
    if entry is None:
        logger.warning("Unknown pagination", extra={"pagination": name, "update_id": ctx.update_id})
        return None
    return await entry.open(ctx, page, *args)


class Pagination:
    """Fluent description of one paged keyboard.

    Usage::

        items = Pagination(bot, "items").data(load_items).keys(item_rows).page_size(5)

        async def show(ctx):
            return await items.open(ctx, 0)

    ``data(ctx, page, *args)`` returns either every item (sliced here) or
    ``(page_items, total_count)``.  ``keys(ctx, items, page, *args)`` returns
    button rows or a :class:`~bot.keyboard.KeyboardBuilder`.
    """

    def __init__(self, bot: "TelegramBot", name: str) -> None:
        if " " in name or not name:
            raise ValueError(f"Pagination name {name!r} must be non-empty and contain no spaces")
        self._bot = bot
        self.name = name
        self._get_data: Callable[..., Any] | None = None
        self._get_text: Callable[..., Any] | None = None
        self._get_keys: Callable[..., Any] | None = None
        self._get_after_keys: Callable[..., Any] | None = None
        self._back = "<"
        self._forth = ">"
        self._middle: str | None = None
        self._page_size = 10

        if not bot.has_action(PAGE_ACTION):
            bot.register(_page, name=PAGE_ACTION)
        bot.paginations[name] = self

    # ── fluent setters ───────────────────────────────────────────────────

    def data(self, func: Callable[..., Any]) -> "Pagination":
        self._get_data = func
        return self

    def text(self, func: Callable[..., Any]) -> "Pagination":
        self._get_text = func
        return self

    def keys(self, func: Callable[..., Any]) -> "Pagination":
        self._get_keys = func
        return self

    def after_keys(self, func: Callable[..., Any]) -> "Pagination":
        """Rows appended below the navigation row."""
        self._get_after_keys = func
        return self

    def back(self, text: str) -> "Pagination":
        self._back = text
        return self

    def forth(self, text: str) -> "Pagination":
        self._forth = text
        return self

    def middle(self, text: str) -> "Pagination":
        self._middle = text
        return self

    def page_size(self, size: int) -> "Pagination":
        if size < 1:
            raise ValueError("page_size must be positive")
        self._page_size = size
        return self

    # ── rendering ────────────────────────────────────────────────────────

    def button(self, text: str, page: int = 0, *args: Any) -> dict:
        """Inline button that opens this pagination at *page*."""
        return callback_button(self._bot, text, PAGE_ACTION, self.name, page, *args)

    def _nav_row(self, previous: int, following: int, args: tuple) -> list[dict]:
        row = [self.button(self._back, previous, *args)]
        if self._middle:
            row.append(text_button(self._middle))
        row.append(self.button(self._forth, following, *args))
        return row

    async def open(self, ctx: "Context", page: int = 0, *args: Any) -> Any:
        """Render *page* and send it (edit for callbacks, reply otherwise)."""
        if self._get_data is None or self._get_keys is None:
            logger.warning("Pagination is missing its data or keys function", extra={"pagination": self.name})
            return True

        response = await _maybe_await(self._get_data(ctx, page, *args))
        if (
            isinstance(response, (tuple, list))
            and len(response) == 2
            and isinstance(response[1], int)
            and not isinstance(response[1], bool)
        ):
            items, total = response[0], response[1]
        else:
            response = list(response or [])
            start = page * self._page_size
            items, total = response[start:start + self._page_size], len(response)

        max_page = max(math.ceil(total / self._page_size) - 1, 0)
        previous = max_page if page <= 0 else page - 1
        following = 0 if page >= max_page else page + 1

        keyboard = await _maybe_await(self._get_keys(ctx, items, page, *args))
        after = None
        if self._get_after_keys is not None:
            after = await _maybe_await(self._get_after_keys(ctx, items, page, *args))

        nav_row = self._nav_row(previous, following, args)
        if isinstance(keyboard, KeyboardBuilder):
            keyboard.add(nav_row)
            if after is not None:
                keyboard.add(after)
        else:
            keyboard = [list(row) for row in keyboard or []]
            keyboard.append(nav_row)
            if after is not None:
                keyboard.extend(after.rows if isinstance(after, KeyboardBuilder) else after)

        text = None
        if self._get_text is not None:
            text = await _maybe_await(self._get_text(ctx, items, page, *args))
        return await ctx.respond(text, keyboard)
