"""Dispatch engine — callback codec, actions, handlers, state and limits.

This package is framework-agnostic. It must NEVER import from ``bot/`` or ``sdk/``.
"""

from core.actions import ActionRef, ActionRegistry
from core.codec import UNDEFINED, CallbackCodec, DecodedToken, coerce_arg, coerce_args
from core.handlers import HandlerDescriptor, HandlerRegistry
from core.identity import get_identity
from core.limiter import RateLimiter
from core.logger import SwitchboardLogger
from core.states import StateEntry, StateStore

__all__ = [
    "ActionRef",
    "ActionRegistry",
    "CallbackCodec",
    "DecodedToken",
    "UNDEFINED",
    "coerce_arg",
    "coerce_args",
    "HandlerDescriptor",
    "HandlerRegistry",
    "get_identity",
    "RateLimiter",
    "SwitchboardLogger",
    "StateEntry",
    "StateStore",
]
