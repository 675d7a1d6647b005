"""Tests for core.codec — callback token encoding, signing and coercion."""

import math
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.codec import (
    MAX_CALLBACK_BYTES,
    UNDEFINED,
    CallbackCodec,
    coerce_arg,
    coerce_args,
    stringify_arg,
)
from core.errors import CallbackDataError


SECRET = "123456:TEST-TOKEN"


# ── Argument coercion ────────────────────────────────────────────────────────


class TestCoerceArg:
    """Validate the fixed coercion priority of wire arguments."""

    def test_booleans(self) -> None:
        assert coerce_arg("false") is False
        assert coerce_arg("true") is True

    def test_null_and_undefined(self) -> None:
        assert coerce_arg("null") is None
        assert coerce_arg("undefined") is UNDEFINED

    def test_special_floats(self) -> None:
        assert math.isnan(coerce_arg("NaN"))
        assert coerce_arg("Infinity") == math.inf
        assert coerce_arg("-Infinity") == -math.inf

    def test_integers(self) -> None:
        assert coerce_arg("1") == 1
        assert isinstance(coerce_arg("1"), int)
        assert coerce_arg("-42") == -42

    def test_floats(self) -> None:
        assert coerce_arg("0.5") == 0.5
        assert coerce_arg("1e3") == 1000.0

    def test_plain_string(self) -> None:
        assert coerce_arg("hello") == "hello"
        assert coerce_arg("12abc") == "12abc"

    def test_case_sensitive_literals(self) -> None:
        assert coerce_arg("True") == "True"
        assert coerce_arg("nan") == "nan"


class TestCoerceArgs:
    """Validate list coercion and the handling of absent arguments."""

    def test_trailing_undefined_dropped(self) -> None:
        assert coerce_args(["1", "undefined", "undefined"]) == [1]

    def test_interior_undefined_becomes_none(self) -> None:
        assert coerce_args(["undefined", "x"]) == [None, "x"]

    def test_empty(self) -> None:
        assert coerce_args([]) == []


class TestStringifyArg:
    def test_literals(self) -> None:
        assert stringify_arg(True) == "true"
        assert stringify_arg(False) == "false"
        assert stringify_arg(None) == "null"
        assert stringify_arg(UNDEFINED) == "undefined"
        assert stringify_arg(math.nan) == "NaN"
        assert stringify_arg(-math.inf) == "-Infinity"

    def test_numbers_and_strings(self) -> None:
        assert stringify_arg(7) == "7"
        assert stringify_arg("abc") == "abc"


# ── Codec ────────────────────────────────────────────────────────────────────


class TestEncode:
    """Validate the wire format produced by encode."""

    def test_signed_format(self) -> None:
        codec = CallbackCodec(SECRET)
        token = codec.encode("clicked", [1])
        signature, unsigned = token.split(" ", 1)
        assert unsigned == "clicked 1"
        assert len(signature) == 6
        assert signature == codec.sign("clicked 1")

    def test_unsigned_format(self) -> None:
        codec = CallbackCodec(SECRET, sign=False)
        assert codec.encode("clicked", [1, "a"]) == "clicked 1 a"

    def test_no_args(self) -> None:
        codec = CallbackCodec(SECRET, sign=False)
        assert codec.encode("menu") == "menu"

    def test_custom_sign_length(self) -> None:
        codec = CallbackCodec(SECRET, sign_length=8)
        assert len(codec.encode("menu").split(" ")[0]) == 8

    def test_invalid_sign_length(self) -> None:
        with pytest.raises(ValueError):
            CallbackCodec(SECRET, sign_length=0)
        with pytest.raises(ValueError):
            CallbackCodec(SECRET, sign_length=45)

    def test_space_in_argument_rejected(self) -> None:
        codec = CallbackCodec(SECRET)
        with pytest.raises(CallbackDataError):
            codec.encode("greet", ["hello world"])

    def test_space_in_action_rejected(self) -> None:
        codec = CallbackCodec(SECRET)
        with pytest.raises(CallbackDataError):
            codec.encode("bad name")

    def test_byte_limit(self) -> None:
        codec = CallbackCodec(SECRET)
        with pytest.raises(CallbackDataError):
            codec.encode("a" * MAX_CALLBACK_BYTES)

    def test_signature_depends_on_secret(self) -> None:
        a = CallbackCodec("one").encode("menu")
        b = CallbackCodec("two").encode("menu")
        assert a != b


class TestDecodeVerify:
    """Validate decode/verify and the round-trip of encode."""

    def test_round_trip_with_coercion(self) -> None:
        codec = CallbackCodec(SECRET)
        token = codec.encode("clicked", [1, True, "x"])
        assert codec.verify(token)
        decoded = codec.decode(token)
        assert decoded.action == "clicked"
        assert decoded.args == ("1", "true", "x")
        assert coerce_args(decoded.args) == [1, True, "x"]
        assert decoded.unsigned == "clicked 1 true x"

    def test_mutated_body_fails_verification(self) -> None:
        codec = CallbackCodec(SECRET)
        token = codec.encode("clicked", [1])
        assert not codec.verify(token[:-1] + "2")

    def test_mutated_signature_fails_verification(self) -> None:
        codec = CallbackCodec(SECRET)
        token = codec.encode("clicked", [1])
        flipped = ("A" if token[0] != "A" else "B") + token[1:]
        assert not codec.verify(flipped)

    def test_malformed_token_does_not_verify(self) -> None:
        codec = CallbackCodec(SECRET)
        assert not codec.verify("short")
        with pytest.raises(CallbackDataError):
            codec.decode("short")

    def test_verify_always_true_without_signing(self) -> None:
        codec = CallbackCodec(SECRET, sign=False)
        assert codec.verify("anything goes")
        decoded = codec.decode("menu 2")
        assert decoded.signature is None
        assert decoded.args == ("2",)

    def test_empty_action_rejected(self) -> None:
        codec = CallbackCodec(SECRET, sign=False)
        with pytest.raises(CallbackDataError):
            codec.decode("")
