"""Exception hierarchy for the Telegram SDK layer."""

from typing import Any, Dict, Optional


class APIException(Exception):
    """A Bot API call failed without a JSON ``ok``/``description`` envelope.

    Replies that do carry the envelope (including 4xx errors such as
    "can't parse entities") are returned to the caller instead, so it can
    inspect ``ok`` and ``description`` itself.

    Attributes:
        method: Bot API method that was called.
        status_code: HTTP status code returned by the API.
        response_body: Parsed body when available, else ``{}``.
    """

    def __init__(self, status_code: int, response_body: Optional[Dict[str, Any]] = None, method: str = "") -> None:
        self.method = method
        self.status_code = status_code
        self.response_body = response_body or {}
        description = self.response_body.get("description", "Unknown error")
        prefix = f"{method}: " if method else ""
        super().__init__(f"{prefix}API error {status_code}: {description}")
