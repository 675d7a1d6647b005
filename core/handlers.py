"""Ordered handler registry and the pure matching rules for inbound updates.

Handlers are tried in registration order.  Kind-specific handlers and
unconditional middleware (``kind is None``) share one list, so middleware runs
interleaved by position rather than before or after every handler.  The
registry is written once at startup and only read afterwards.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Any, Callable, Iterator

# Every top-level update kind the Bot API can deliver.
UPDATE_KINDS: frozenset[str] = frozenset({
    "message", "edited_message", "channel_post", "edited_channel_post",
    "business_connection", "business_message", "edited_business_message",
    "deleted_business_messages", "message_reaction", "message_reaction_count",
    "inline_query", "chosen_inline_result", "callback_query", "shipping_query",
    "pre_checkout_query", "purchased_paid_media", "poll", "poll_answer",
    "my_chat_member", "chat_member", "chat_join_request", "chat_boost",
    "removed_chat_boost",
})

# Message fields that ``on("video")``-style shortcuts subscribe to.
# ``poll`` is left out on purpose: it is also an update kind (use "message:poll").
MESSAGE_KEYS: frozenset[str] = frozenset({
    "quote", "reply_to_story", "reply_to_checklist_task_id", "text",
    "animation", "audio", "document", "paid_media", "photo", "sticker",
    "story", "video", "video_note", "voice", "caption", "checklist",
    "contact", "dice", "game", "venue", "location",
    "new_chat_members", "left_chat_member", "new_chat_title", "new_chat_photo",
    "delete_chat_photo", "group_chat_created", "supergroup_chat_created",
    "channel_chat_created", "message_auto_delete_timer_changed", "migrate_to_chat_id",
    "migrate_from_chat_id", "pinned_message", "invoice", "successful_payment",
    "refunded_payment", "users_shared", "chat_shared", "gift", "unique_gift",
    "connected_website", "write_access_allowed", "passport_data",
    "proximity_alert_triggered", "boost_added", "chat_background_set",
    "checklist_tasks_done", "checklist_tasks_added", "direct_message_price_changed",
    "forum_topic_created", "forum_topic_edited", "forum_topic_closed", "forum_topic_reopened",
    "general_forum_topic_hidden", "general_forum_topic_unhidden", "giveaway_created",
    "giveaway", "giveaway_winners", "giveaway_completed", "paid_message_price_changed",
    "suggested_post_approved", "suggested_post_approval_failed", "suggested_post_declined",
    "suggested_post_paid", "suggested_post_refunded", "video_chat_scheduled",
    "video_chat_started", "video_chat_ended", "video_chat_participants_invited", "web_app_data",
})

HandlerFunc = Callable[..., Any]
MatchValue = str | int | re.Pattern[str] | None


@dataclasses.dataclass(frozen=True, slots=True)
class HandlerDescriptor:
    """One registered handler.

    ``kind`` of ``None`` marks unconditional middleware.  ``name`` is the
    action name the allow-set is checked against.
    """
    action: HandlerFunc
    name: str
    kind: str | None = None
    match_key: str | None = None
    match_value: MatchValue = None
    always_run: bool = False


def _normalise(name: str) -> str:
    name = name.replace("-", "_")
    return "callback_query" if name == "callback" else name


def _handler_name(func: HandlerFunc) -> str:
    name = getattr(func, "__name__", "")
    return "" if name == "<lambda>" else name


def literal_pattern(text: str, *, full: bool = True) -> re.Pattern[str]:
    """Compile *text* as an escaped, start-anchored (optionally full) pattern."""
    return re.compile("^" + re.escape(text) + ("$" if full else ""))


class HandlerRegistry:
    """Ordered list of :class:`HandlerDescriptor` plus the kinds seen so far."""

    def __init__(self) -> None:
        self._handlers: list[HandlerDescriptor] = []
        self._kinds: set[str | None] = set()

    # ── core API ─────────────────────────────────────────────────────────

    def register(self, descriptor: HandlerDescriptor) -> HandlerDescriptor:
        self._handlers.append(descriptor)
        self._kinds.add(descriptor.kind)
        return descriptor

    def has_handlers_for(self, kind: str) -> bool:
        return kind in self._kinds or None in self._kinds

    def __iter__(self) -> Iterator[HandlerDescriptor]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    @staticmethod
    def matches(handler: HandlerDescriptor, kind: str, payload: dict, text: str | None) -> bool:
        """Apply the matching rule of *handler* to one update.

        1. A set kind must equal the update's kind.
        2. With a ``match_key``: a pattern is searched in the named text field
           (``text`` falls back to ``caption``); a literal must equal
           ``payload[match_key]``; no value only requires the field present.
        3. Otherwise the handler matches unconditionally.
        """
        if handler.kind is not None and handler.kind != kind:
            return False
        if handler.match_key is None:
            return True
        if isinstance(handler.match_value, re.Pattern):
            subject = text if handler.match_key == "text" else payload.get(handler.match_key)
            return isinstance(subject, str) and handler.match_value.search(subject) is not None
        if handler.match_value is not None:
            return payload.get(handler.match_key) == handler.match_value
        return payload.get(handler.match_key) is not None

    def iter_matches(self, kind: str, payload: dict, text: str | None) -> Iterator[HandlerDescriptor]:
        """Yield matching handlers in registration order."""
        if not self.has_handlers_for(kind):
            return
        for handler in self._handlers:
            if self.matches(handler, kind, payload, text):
                yield handler

    # ── registration helpers ─────────────────────────────────────────────

    def add(
        self,
        kind: str | None,
        func: HandlerFunc,
        key: str | None = None,
        value: MatchValue = None,
        *,
        always: bool = False,
        name: str | None = None,
    ) -> HandlerDescriptor:
        return self.register(HandlerDescriptor(
            action=func,
            name=name if name is not None else _handler_name(func),
            kind=kind,
            match_key=key,
            match_value=value,
            always_run=always,
        ))

    def on(self, match: str | re.Pattern[str], func: HandlerFunc, *, always: bool = False) -> HandlerDescriptor:
        """Subscribe *func* using the shorthand grammar.

        * a compiled pattern → searched in message text;
        * ``"callback"`` or an update kind → every update of that kind;
        * ``"kind:key"`` → updates of that kind carrying ``key``;
        * a message field such as ``"video"`` → messages with that field;
        * anything else → messages whose text starts with *match*.
        """
        if isinstance(match, re.Pattern):
            return self.add("message", func, "text", match, always=always)

        normalised = _normalise(match)
        if normalised in UPDATE_KINDS:
            return self.add(normalised, func, always=always)
        if ":" in normalised:
            kind, _, key = normalised.partition(":")
            kind = _normalise(kind)
            if kind in UPDATE_KINDS:
                return self.add(kind, func, key, always=always)
        if normalised in MESSAGE_KEYS:
            return self.add("message", func, normalised, always=always)
        return self.add("message", func, "text", literal_pattern(match, full=False), always=always)

    def on_update(self, update: str, func: HandlerFunc) -> HandlerDescriptor:
        """Subscribe to an update kind, optionally narrowed with ``:key``.

        Accepts ``"message"``, ``"message:text"``, ``"chat-boost"``,
        ``"poll-answer:user"``; no other shorthand is interpreted.
        """
        kind, _, key = _normalise(update).partition(":")
        return self.add(_normalise(kind), func, key or None)

    def text(self, text: str | re.Pattern[str], func: HandlerFunc, *, always: bool = False) -> HandlerDescriptor:
        """Subscribe to messages whose whole text equals *text* (or matches a pattern)."""
        pattern = text if isinstance(text, re.Pattern) else literal_pattern(text)
        return self.add("message", func, "text", pattern, always=always)

    def use(self, func: HandlerFunc) -> HandlerDescriptor:
        """Unconditional middleware, subject to the allow-set."""
        return self.add(None, func)

    def use_always(self, func: HandlerFunc) -> HandlerDescriptor:
        """Unconditional middleware that also bypasses the allow-set."""
        return self.add(None, func, always=True)

    def has_text(self, text: str) -> bool:
        """Return ``True`` if an exact-text message handler for *text* exists."""
        pattern = literal_pattern(text).pattern
        return any(
            h.kind == "message"
            and h.match_key == "text"
            and isinstance(h.match_value, re.Pattern)
            and h.match_value.pattern == pattern
            for h in self._handlers
        )

    def describe(self) -> list[dict[str, Any]]:
        """Return every handler in execution order (nameless ones shown as ``$``)."""
        rows: list[dict[str, Any]] = []
        for h in self._handlers:
            row: dict[str, Any] = {"update": h.kind or "any"}
            if h.match_key:
                value = h.match_value
                row[h.match_key] = value.pattern if isinstance(value, re.Pattern) else (value or "any")
            row["function"] = h.name or "$"
            if h.always_run:
                row["always"] = True
            rows.append(row)
        return rows
