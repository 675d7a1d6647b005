"""Exception hierarchy and the suppressible-error policy.

Registration mistakes (duplicate or late anonymous actions) are raised to the
bot author immediately.  Runtime conditions that must not kill dispatch
(unknown action, bad signature) are logged by the caller instead of raised.
"""

from typing import Iterable


class SwitchboardError(Exception):
    """Base class for every error raised by this project."""


class OptionsError(SwitchboardError):
    """Wrong bot options (e.g. a malformed token)."""


class CallbackOverride(SwitchboardError):
    """An action name is already registered and overriding is not allowed."""


class NamelessCallback(SwitchboardError):
    """An anonymous action was registered after the bot started serving."""


class CallbackNotFound(SwitchboardError):
    """A callback token or chain result named an unregistered action."""


class CallbackDataError(SwitchboardError, ValueError):
    """Arguments or length make a callback token unencodable."""


class ChainDepthExceeded(SwitchboardError):
    """A handler's return-value chain recursed past the configured limit."""

    def __init__(self, depth: int) -> None:
        self.depth = depth
        super().__init__(f"Handler chain exceeded maximum depth of {depth}")


class ParserError(SwitchboardError):
    """The platform rejected message formatting (unclosed tags, bad entities)."""

    def __init__(self, description: str, response: dict | None = None) -> None:
        self.description = description
        self.response = response or {}
        super().__init__(description)


class MediaFileNotFound(SwitchboardError):
    """A local file referenced by a media message does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"File not found: {path}")


class ErrorPolicy:
    """Registry of error kinds the bot author opted out of.

    Usage::

        policy = ErrorPolicy()
        policy.dont_raise(ParserError)
        policy.should_raise(ParserError("bad tag"))  # False
    """

    def __init__(self) -> None:
        self._suppressed: list[type[BaseException]] = []

    def dont_raise(self, *errors: type[BaseException]) -> None:
        for err in errors:
            if err not in self._suppressed:
                self._suppressed.append(err)

    def should_raise(self, err: BaseException) -> bool:
        return not any(isinstance(err, kind) for kind in self._suppressed)

    @property
    def suppressed(self) -> Iterable[type[BaseException]]:
        return tuple(self._suppressed)
