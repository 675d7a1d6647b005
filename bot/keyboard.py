"""Fluent inline and reply keyboard builders.

Inline callback buttons carry a signed callback token produced by the owning
bot's codec; callables passed as the action are registered on the fly.  Reply
keyboard callback buttons register an exact-text message handler instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from core.actions import ActionRef, name_of
from core.codec import PLACEHOLDER

if TYPE_CHECKING:
    from bot.app import TelegramBot

# Telegram renders at most this many buttons side by side.
MAX_ROW_WIDTH = 8

Button = dict
Rows = list[list[Button]]


def _action_name(bot: "TelegramBot", action: ActionRef | str | Any) -> str:
    if isinstance(action, (ActionRef, str)):
        return name_of(action)
    return bot.actions.ensure(action).name


def callback_button(bot: "TelegramBot", text: str, action: ActionRef | str | Any, *args: Any) -> Button:
    """Build one inline button that triggers *action* with *args*.

    Example::

        row = [callback_button(bot, "+1", add, 1), callback_button(bot, "-1", add, -1)]
    """
    return {"text": text, "callback_data": bot.codec.encode(_action_name(bot, action), args)}


def text_button(text: str) -> Button:
    """An inline button that does nothing when pressed."""
    return {"text": text, "callback_data": PLACEHOLDER}


def url_button(text: str, url: str) -> Button:
    return {"text": text, "url": url}


class KeyboardBuilder:
    """Accumulate button rows and build a ``reply_markup`` dict.

    Usage::

        markup = (
            bot.panel()
            .callback("Yes", confirm, order_id)
            .callback("No", cancel)
            .row()
            .url("Docs", "https://example.org")
            .build()
        )
    """

    def __init__(self, bot: "TelegramBot", inline: bool) -> None:
        self._bot = bot
        self._inline = inline
        self._rows: Rows = [[]]
        self._resize = True

    def __repr__(self) -> str:
        kind = "inline" if self._inline else "reply"
        return f"KeyboardBuilder({kind}, rows={len(self._rows)})"

    @property
    def bot(self) -> "TelegramBot":
        return self._bot

    @property
    def inline(self) -> bool:
        return self._inline

    @property
    def height(self) -> int:
        """Index of the row new buttons go to."""
        return len(self._rows) - 1

    @property
    def rows(self) -> Rows:
        return [list(row) for row in self._rows]

    # ── buttons ──────────────────────────────────────────────────────────

    def text(self, text: str) -> "KeyboardBuilder":
        self._rows[-1].append(text_button(text) if self._inline else {"text": text})
        return self

    def url(self, text: str, url: str) -> "KeyboardBuilder":
        self._rows[-1].append(url_button(text, url))
        return self

    def callback(self, text: str, action: ActionRef | str | Any, *args: Any) -> "KeyboardBuilder":
        """Add a button bound to *action*.

        Raises:
            CallbackDataError: the encoded token is unusable (see the codec).
            NamelessCallback: *action* is anonymous and the bot already started.
            ValueError: arguments were given for a reply keyboard.
        """
        if self._inline:
            self._rows[-1].append(callback_button(self._bot, text, action, *args))
            return self

        if args:
            raise ValueError("Reply keyboard buttons can't carry arguments")
        if not self._bot.handlers.has_text(text):
            func = self._bot.actions.get(name_of(action)) if isinstance(action, (ActionRef, str)) else action
            if func is None:
                raise ValueError(f"Action {name_of(action)!r} is not registered")
            self._bot.text(text, func)
        self._rows[-1].append({"text": text})
        return self

    # ── layout ───────────────────────────────────────────────────────────

    def row(self) -> "KeyboardBuilder":
        self._rows.append([])
        return self

    def rollback(self) -> "KeyboardBuilder":
        """Keep the reply keyboard at its default (non-resized) height."""
        self._resize = False
        return self

    def add(self, obj: "KeyboardBuilder | Rows | list[Button] | Button | Iterable[KeyboardBuilder]") -> "KeyboardBuilder":
        """Append another keyboard, a list of rows, one row or one button.

        A single button goes to the current row, or starts a new row once
        the current one holds :data:`MAX_ROW_WIDTH` buttons.
        """
        if isinstance(obj, KeyboardBuilder):
            self._rows.extend(obj.rows)
        elif isinstance(obj, list):
            if obj and all(isinstance(item, list) for item in obj):
                self._rows.extend(list(row) for row in obj)
            elif obj and all(isinstance(item, KeyboardBuilder) for item in obj):
                for builder in obj:
                    self._rows.extend(builder.rows)
            else:
                self._rows.append(list(obj))
        elif len(self._rows[-1]) >= MAX_ROW_WIDTH:
            self._rows.append([obj])
        else:
            self._rows[-1].append(obj)

        if len(self._rows) > 1 and not self._rows[0]:
            self._rows.pop(0)
        return self

    # ── output ───────────────────────────────────────────────────────────

    def build(self) -> dict:
        rows = [list(row) for row in self._rows if row]
        if self._inline:
            return {"inline_keyboard": rows}
        markup: dict = {"keyboard": rows}
        if self._resize:
            markup["resize_keyboard"] = True
        return markup
