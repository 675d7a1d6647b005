"""Callback token codec — action name + positional args ⇄ ``callback_data``.

Wire format::

    [signature ' '] action_name [' ' arg]*

Arguments are separated by single spaces, so an argument may never contain a
space.  This is a hard limit of the format: :meth:`CallbackCodec.encode`
raises :class:`~core.errors.CallbackDataError` instead of escaping.

The optional signature is the first ``sign_length`` characters of
``base64(sha256(unsigned + secret))``.  A handful of characters only makes
tokens *tamper-evident* (a user editing a button payload is caught); it is not
a cryptographic guarantee against a determined forger, who can brute-force a
short prefix offline.  Longer signatures trade callback-data budget for
strength.
"""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import hmac
import math
import re
from typing import Any, Iterable

from core.errors import CallbackDataError

# Telegram limits callback_data to 64 bytes.
MAX_CALLBACK_BYTES: int = 64

# Data of a button that carries no action.
PLACEHOLDER: str = " "

_INT_RE = re.compile(r"[+-]?\d+")
_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class _Undefined:
    """Sentinel for the ``"undefined"`` wire literal (an absent argument)."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


@dataclasses.dataclass(frozen=True, slots=True)
class DecodedToken:
    """Result of :meth:`CallbackCodec.decode`; *args* are raw wire strings."""

    signature: str | None
    action: str
    args: tuple[str, ...]

    @property
    def unsigned(self) -> str:
        return " ".join((self.action, *self.args))


# ── Argument coercion ────────────────────────────────────────────────────────


def coerce_arg(raw: str) -> Any:
    """Coerce one wire argument to the most specific scalar it spells.

    Priority order is fixed: ``"false"``, ``"true"``, ``"undefined"``,
    ``"NaN"``, ``"null"``, ``"Infinity"``, a number, otherwise the string
    itself.  ``"42"`` therefore always arrives as ``42``; callers needing a
    literal digit string must not pass it through callback data.
    """
    if raw == "false":
        return False
    if raw == "true":
        return True
    if raw == "undefined":
        return UNDEFINED
    if raw == "NaN":
        return math.nan
    if raw == "null":
        return None
    if raw in ("Infinity", "+Infinity"):
        return math.inf
    if raw == "-Infinity":
        return -math.inf
    if _INT_RE.fullmatch(raw):
        return int(raw)
    if _NUMBER_RE.fullmatch(raw):
        return float(raw)
    return raw


def coerce_args(raws: Iterable[str]) -> list[Any]:
    """Coerce every argument, dropping trailing :data:`UNDEFINED` values.

    Trailing absent arguments are removed so the action's own defaults apply;
    an interior ``"undefined"`` becomes ``None``.
    """
    values = [coerce_arg(raw) for raw in raws]
    while values and values[-1] is UNDEFINED:
        values.pop()
    return [None if v is UNDEFINED else v for v in values]


def stringify_arg(value: Any) -> str:
    """Render *value* in the vocabulary :func:`coerce_arg` understands."""
    if value is UNDEFINED:
        return "undefined"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
    return str(value)


# ── Codec ────────────────────────────────────────────────────────────────────


class CallbackCodec:
    """Encode, sign, decode and verify callback tokens.

    The signing secret is fixed for the lifetime of the codec.
    """

    DEFAULT_SIGN_LENGTH: int = 6

    def __init__(
        self,
        secret: str,
        *,
        sign: bool = True,
        sign_length: int = DEFAULT_SIGN_LENGTH,
        max_bytes: int | None = MAX_CALLBACK_BYTES,
    ) -> None:
        if sign_length < 1 or sign_length > 44:
            raise ValueError("sign_length must be between 1 and 44")
        self._secret = secret
        self._signing = sign
        self._sign_length = sign_length
        self._max_bytes = max_bytes

    @property
    def signing(self) -> bool:
        return self._signing

    @property
    def sign_length(self) -> int:
        return self._sign_length

    def sign(self, data: str) -> str:
        """Return the truncated signature of *data*."""
        digest = hashlib.sha256((data + self._secret).encode("utf-8")).digest()
        return base64.b64encode(digest).decode("ascii")[: self._sign_length]

    def encode(self, action: str, args: Iterable[Any] = ()) -> str:
        """Build the callback token for *action* called with *args*.

        Raises:
            CallbackDataError: an argument or the action name contains a
                space, or the token exceeds the callback-data byte budget.
        """
        if not action or " " in action:
            raise CallbackDataError(f"Invalid action name: {action!r}")
        parts = [action]
        for arg in args:
            text = stringify_arg(arg)
            if " " in text:
                raise CallbackDataError(
                    f"Callback argument {text!r} contains a space; spaces separate arguments"
                )
            parts.append(text)
        return self.wrap(" ".join(parts))

    def wrap(self, unsigned: str) -> str:
        """Prefix an already-joined payload with its signature when signing."""
        token = f"{self.sign(unsigned)} {unsigned}" if self._signing else unsigned
        if self._max_bytes is not None and len(token.encode("utf-8")) > self._max_bytes:
            raise CallbackDataError(
                f"Callback data is {len(token.encode('utf-8'))} bytes, limit is {self._max_bytes}"
            )
        return token

    def decode(self, token: str) -> DecodedToken:
        """Split *token* into signature, action name and raw arguments.

        Raises:
            CallbackDataError: the token is empty or too short to carry a
                signature when signing is enabled.
        """
        signature: str | None = None
        body = token
        if self._signing:
            n = self._sign_length
            if len(token) < n + 2 or token[n] != " ":
                raise CallbackDataError(f"Malformed signed callback data: {token!r}")
            signature, body = token[:n], token[n + 1:]
        parts = body.split(" ")
        if not parts[0]:
            raise CallbackDataError(f"Callback data has no action name: {token!r}")
        return DecodedToken(signature=signature, action=parts[0], args=tuple(parts[1:]))

    def verify(self, token: str) -> bool:
        """Return ``True`` when *token*'s embedded signature matches its body.

        Always ``True`` when signing is disabled.
        """
        if not self._signing:
            return True
        n = self._sign_length
        if len(token) < n + 2 or token[n] != " ":
            return False
        expected = self.sign(token[n + 1:])
        return hmac.compare_digest(expected.encode("ascii"), token[:n].encode("utf-8"))
