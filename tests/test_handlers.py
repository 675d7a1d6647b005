"""Tests for core.handlers — handler registration grammar and matching."""

import os
import re
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.handlers import HandlerDescriptor, HandlerRegistry, literal_pattern


async def h(ctx):
    return True


# ── Shorthand grammar ────────────────────────────────────────────────────────


class TestOnGrammar:
    """Validate how ``on(match)`` shorthands become descriptors."""

    def test_update_kind(self) -> None:
        d = HandlerRegistry().on("edited_message", h)
        assert (d.kind, d.match_key) == ("edited_message", None)

    def test_dashes_and_callback_alias(self) -> None:
        registry = HandlerRegistry()
        assert registry.on("chat-boost", h).kind == "chat_boost"
        assert registry.on("callback", h).kind == "callback_query"

    def test_kind_with_key(self) -> None:
        d = HandlerRegistry().on("edited-message:poll", h)
        assert (d.kind, d.match_key, d.match_value) == ("edited_message", "poll", None)

    def test_message_field(self) -> None:
        d = HandlerRegistry().on("video", h)
        assert (d.kind, d.match_key) == ("message", "video")

    def test_text_prefix(self) -> None:
        d = HandlerRegistry().on("/start", h)
        assert d.kind == "message"
        assert d.match_key == "text"
        assert d.match_value.pattern == literal_pattern("/start", full=False).pattern

    def test_compiled_pattern(self) -> None:
        pattern = re.compile(r"\d+")
        d = HandlerRegistry().on(pattern, h)
        assert d.match_value is pattern

    def test_always_flag(self) -> None:
        assert HandlerRegistry().on("/reset", h, always=True).always_run

    def test_on_update_with_key(self) -> None:
        d = HandlerRegistry().on_update("poll-answer:user", h)
        assert (d.kind, d.match_key) == ("poll_answer", "user")

    def test_name_from_function(self) -> None:
        registry = HandlerRegistry()
        assert registry.on("/x", h).name == "h"
        assert registry.on("/y", lambda ctx: True).name == ""


# ── Matching ─────────────────────────────────────────────────────────────────


class TestMatches:
    """Validate the pure matching rule."""

    def test_kind_mismatch(self) -> None:
        d = HandlerDescriptor(action=h, name="h", kind="message")
        assert not HandlerRegistry.matches(d, "callback_query", {}, None)

    def test_middleware_matches_everything(self) -> None:
        d = HandlerDescriptor(action=h, name="h")
        assert HandlerRegistry.matches(d, "poll", {}, None)

    def test_prefix_text(self) -> None:
        d = HandlerRegistry().on("/start", h)
        assert HandlerRegistry.matches(d, "message", {"text": "/start ref"}, "/start ref")
        assert not HandlerRegistry.matches(d, "message", {"text": "x /start"}, "x /start")

    def test_exact_text(self) -> None:
        d = HandlerRegistry().text("Menu", h)
        assert HandlerRegistry.matches(d, "message", {}, "Menu")
        assert not HandlerRegistry.matches(d, "message", {}, "Menu 2")

    def test_text_pattern_searches_caption_fallback(self) -> None:
        d = HandlerRegistry().on(re.compile("cat"), h)
        assert HandlerRegistry.matches(d, "message", {"caption": "a cat"}, "a cat")

    def test_text_pattern_without_text(self) -> None:
        d = HandlerRegistry().on("/start", h)
        assert not HandlerRegistry.matches(d, "message", {"photo": []}, None)

    def test_required_key(self) -> None:
        d = HandlerRegistry().on("video", h)
        assert HandlerRegistry.matches(d, "message", {"video": {}}, None)
        assert not HandlerRegistry.matches(d, "message", {"text": "hi"}, "hi")

    def test_literal_value_compares_payload_field(self) -> None:
        d = HandlerRegistry().add("message", h, "chat_type", "group")
        assert HandlerRegistry.matches(d, "message", {"chat_type": "group"}, None)
        assert not HandlerRegistry.matches(d, "message", {"chat_type": "private"}, None)


class TestIteration:
    """Validate registration order across kinds and middleware."""

    def test_order_is_registration_order(self) -> None:
        registry = HandlerRegistry()

        async def h1(ctx): ...
        async def h2(ctx): ...
        async def h3(ctx): ...

        registry.add("message", h1)
        registry.use_always(h2)
        registry.add("message", h3, "text", re.compile(r"^/start$"))

        matched = [d.name for d in registry.iter_matches("message", {"text": "/start"}, "/start")]
        assert matched == ["h1", "h2", "h3"]

    def test_no_handlers_for_kind(self) -> None:
        registry = HandlerRegistry()
        registry.on("message", h)
        assert not registry.has_handlers_for("poll")
        assert list(registry.iter_matches("poll", {}, None)) == []

    def test_middleware_enables_every_kind(self) -> None:
        registry = HandlerRegistry()
        registry.use(h)
        assert registry.has_handlers_for("poll")
        assert len(registry) == 1


class TestDescribe:
    def test_describe_rows(self) -> None:
        registry = HandlerRegistry()
        registry.on("/start", h)
        registry.use(lambda ctx: None)
        registry.on("video", h, always=True)
        rows = registry.describe()
        assert rows[0] == {"update": "message", "text": "^/start", "function": "h"}
        assert rows[1] == {"update": "any", "function": "$"}
        assert rows[2] == {"update": "message", "video": "any", "function": "h", "always": True}

    def test_has_text(self) -> None:
        registry = HandlerRegistry()
        registry.text("Menu", h)
        assert registry.has_text("Menu")
        assert not registry.has_text("Other")


@pytest.mark.parametrize("text", ["a.b", "(x)", "1+1"])
def test_literal_pattern_escapes(text: str) -> None:
    assert literal_pattern(text).fullmatch(text)
