"""TelegramClient — the outbound ``call(method, params) -> JSON`` capability.

HTTP calls use the ``requests`` library.  :meth:`TelegramClient.acall` offloads
the blocking request through :func:`asyncio.to_thread` so the event loop that
dispatches updates is never blocked.

Reply handling follows the Bot API envelope convention: any JSON body with an
``ok`` field is returned as-is, whether the HTTP status was 2xx or 4xx, so the
caller can read ``ok`` / ``description``.  A reply without that envelope
raises :class:`~sdk.exceptions.APIException`.  Network errors propagate; this
layer never retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import requests

from sdk.exceptions import APIException
from sdk.models import WebhookInfo

# Child of the "switchboard" logger, so records share its JSON handlers.
logger = logging.getLogger("switchboard.sdk")

DEFAULT_API_URL: str = "https://api.telegram.org"


def _form_value(value: Any) -> str:
    """Encode a multipart form field the way the Bot API expects."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class TelegramClient:
    """Thin client for the Telegram Bot API.

    Args:
        base_url: Full Bot API base URL (``https://api.telegram.org/bot<token>``).
        timeout: Default request timeout in seconds.
    """

    _DEFAULT_TIMEOUT: int = 10

    def __init__(self, base_url: str, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @classmethod
    def for_token(cls, token: str, api_url: str = DEFAULT_API_URL, timeout: int = _DEFAULT_TIMEOUT) -> "TelegramClient":
        return cls(f"{api_url.rstrip('/')}/bot{token}", timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    #  Core capability
    # ------------------------------------------------------------------

    def call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """POST *params* to *method* and return the parsed reply envelope.

        With *files* the request is sent as ``multipart/form-data`` and
        non-string params are JSON-encoded.

        Raises:
            APIException: The reply is not a JSON envelope.
            requests.RequestException: On transport-level failures.
        """
        url = f"{self._base_url}/{method.lstrip('/')}"
        request_timeout = timeout if timeout is not None else self._timeout
        if files:
            data = {k: _form_value(v) for k, v in (params or {}).items() if v is not None}
            response = requests.post(url, data=data, files=files, timeout=request_timeout)
        else:
            response = requests.post(url, json=params or {}, timeout=request_timeout)

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict) or "ok" not in body:
            logger.error(
                "Bot API reply without envelope",
                extra={"api_endpoint": method, "status_code": response.status_code},
            )
            raise APIException(response.status_code, body if isinstance(body, dict) else None, method=method)

        if not body.get("ok"):
            logger.warning(
                "Bot API call failed",
                extra={"api_endpoint": method, "status_code": response.status_code, "api_response": body},
            )
        else:
            logger.debug("Bot API call ok", extra={"api_endpoint": method})
        return body

    async def acall(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Run :meth:`call` in a worker thread."""
        return await asyncio.to_thread(self.call, method, params, files, timeout)

    # ------------------------------------------------------------------
    #  Endpoint wrappers used by the transports
    # ------------------------------------------------------------------

    def get_updates(
        self,
        offset: Optional[int] = None,
        limit: Optional[int] = 100,
        timeout: Optional[int] = 30,
        allowed_updates: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Long-poll for updates.  The HTTP timeout exceeds the poll timeout by 5 s."""
        payload: Dict[str, Any] = {}
        if offset is not None:
            payload["offset"] = offset
        if limit is not None:
            payload["limit"] = limit
        if timeout is not None:
            payload["timeout"] = timeout
        if allowed_updates is not None:
            payload["allowed_updates"] = allowed_updates
        return self.call("getUpdates", payload, timeout=(timeout or 0) + 5)

    def get_me(self) -> Dict[str, Any]:
        return self.call("getMe")

    def get_webhook_info(self) -> Optional[WebhookInfo]:
        data = self.call("getWebhookInfo")
        if not data.get("ok"):
            return None
        return WebhookInfo.model_validate(data["result"])

    def set_webhook(
        self,
        url: str,
        secret_token: Optional[str] = None,
        max_connections: Optional[int] = None,
        allowed_updates: Optional[List[str]] = None,
        drop_pending_updates: Optional[bool] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"url": url}
        if secret_token is not None:
            payload["secret_token"] = secret_token
        if max_connections is not None:
            payload["max_connections"] = max_connections
        if allowed_updates is not None:
            payload["allowed_updates"] = allowed_updates
        if drop_pending_updates is not None:
            payload["drop_pending_updates"] = drop_pending_updates
        return self.call("setWebhook", payload)

    def delete_webhook(self, drop_pending_updates: Optional[bool] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if drop_pending_updates is not None:
            payload["drop_pending_updates"] = drop_pending_updates
        return self.call("deleteWebhook", payload)

    def answer_callback_query(self, callback_query_id: str, **options: Any) -> Dict[str, Any]:
        """Acknowledge a callback query so the spinner disappears for the user."""
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        payload.update({k: v for k, v in options.items() if v is not None})
        return self.call("answerCallbackQuery", payload)
