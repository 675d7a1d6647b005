"""Inbound transports: long polling and a FastAPI webhook app.

Both hand every update to :meth:`bot.app.TelegramBot.process_update` as an
independent task, so a slow handler never delays fetching or acknowledging
the next update.
"""

from __future__ import annotations

import asyncio
import contextlib
import hmac
from typing import TYPE_CHECKING, AsyncIterator, Optional

import requests
from fastapi import APIRouter, FastAPI, HTTPException, Request, status

from core.handlers import UPDATE_KINDS
from core.logger import SwitchboardLogger
from sdk.exceptions import APIException

if TYPE_CHECKING:
    from bot.app import TelegramBot

logger = SwitchboardLogger.get_logger()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


class LongPoller:
    """Fetch updates with ``getUpdates`` until stopped.

    Args:
        bot: The bot whose dispatcher receives the updates.
        poll_timeout: Server-side long-poll timeout in seconds.
        allowed_updates: Update kinds to subscribe to (Bot API default if ``None``).
        receive_all: Subscribe to every update kind, overriding *allowed_updates*.
        backoff: Seconds to wait after a failed ``getUpdates``.
    """

    def __init__(
        self,
        bot: "TelegramBot",
        poll_timeout: int = 30,
        allowed_updates: Optional[list[str]] = None,
        receive_all: bool = False,
        backoff: float = 5.0,
    ) -> None:
        self._bot = bot
        self.poll_timeout = poll_timeout
        self.allowed_updates = sorted(UPDATE_KINDS) if receive_all else allowed_updates
        self.backoff = backoff
        self.offset: Optional[int] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def poll_once(self) -> int:
        """Run one ``getUpdates`` round; return how many updates were spawned."""
        try:
            data = await asyncio.to_thread(
                self._bot.client.get_updates,
                self.offset,
                timeout=self.poll_timeout,
                allowed_updates=self.allowed_updates,
            )
        except (requests.RequestException, APIException) as exc:
            logger.error("getUpdates request error", extra={"api_endpoint": "getUpdates", "error": str(exc)})
            await asyncio.sleep(self.backoff)
            return 0

        if not data.get("ok"):
            logger.warning("getUpdates returned ok=false, retrying", extra={"api_endpoint": "getUpdates", "backoff": self.backoff})
            await asyncio.sleep(self.backoff)
            return 0

        updates = data.get("result") or []
        if updates:
            logger.debug("Received updates", extra={"count": len(updates)})
        for update in updates:
            self._bot.spawn(self._bot.process_update(update))
            self.offset = update["update_id"] + 1
        return len(updates)

    async def run(self) -> None:
        """Poll until :meth:`stop` is called or the task is cancelled."""
        self._running = True
        logger.info("Polling for updates", extra={"allowed_updates": self.allowed_updates})
        try:
            while self._running:
                await self.poll_once()
        finally:
            self._running = False

    def stop(self) -> None:
        """Finish after the current ``getUpdates`` round."""
        self._running = False


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    return provided is not None and hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def create_webhook_app(bot: "TelegramBot", secret_token: Optional[str] = None, path: str = "/") -> FastAPI:
    """Build a FastAPI app that feeds webhook updates to *bot*.

    * ``POST path`` — checks the secret header (401 on mismatch), parses the
      JSON body (400 when invalid), schedules processing, returns ``{"ok": true}``.
    * ``GET path`` — health probe.

    The app's lifespan starts the bot's background sweeps and stops them on
    shutdown.
    """
    router = APIRouter()

    @router.post(path)
    async def receive_update(request: Request) -> dict:
        """Accept one update from Telegram."""
        if secret_token and not _secret_matches(request.headers.get(SECRET_HEADER), secret_token):
            logger.warning("Webhook update with invalid secret token", extra={"client": request.client.host if request.client else None})
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid secret token")

        try:
            update = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not valid JSON")
        if not isinstance(update, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Update must be a JSON object")

        bot.spawn(bot.process_update(update))
        return {"ok": True}

    @router.get(path)
    async def probe() -> dict:
        """Health probe; Telegram only ever POSTs."""
        return {"ok": True, "bot_id": bot.id, "message": "Use POST with JSON payload"}

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await bot.start()
        try:
            yield
        finally:
            await bot.stop()

    app = FastAPI(lifespan=lifespan)
    app.include_router(router)
    return app
