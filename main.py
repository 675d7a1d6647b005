"""Entry point: build the bot from :mod:`config` and serve it.

Runs long polling by default, or a FastAPI webhook app under ``uvicorn`` when
``WEBHOOK_URL`` is set.  The handlers registered here form a small demo: a
click counter on ``/start``, an awaited-input form on ``/age`` and an
always-available ``/reset``.
"""

import asyncio
import logging

import uvicorn

import config
from bot import Context, TelegramBot
from core.logger import SwitchboardLogger
from core.states import StateStore

logger = SwitchboardLogger.get_logger()


def build_bot(token: str) -> TelegramBot:
    """Construct the bot with settings from :mod:`config`."""
    bot = TelegramBot(
        token,
        api_url=config.API_BASE_URL,
        sign_callbacks=config.SIGN_CALLBACKS,
        sign_length=config.SIGN_LENGTH,
        callback_secret=config.CALLBACK_SECRET,
        states=StateStore(unload_after=config.STATE_UNLOAD_AFTER, max_size=config.STATE_MAX_SIZE),
        update_timeout=config.UPDATE_TIMEOUT,
        max_chain_depth=config.MAX_CHAIN_DEPTH,
        state_sweep_interval=config.STATE_SWEEP_INTERVAL,
    )
    bot.set_parser("HTML")
    register_demo(bot)
    return bot


def register_demo(bot: TelegramBot) -> None:
    """Register the demo handlers and actions on *bot*."""
    ages: dict[int, int] = {}

    @bot.action()
    async def clicked(ctx: Context, amount: int = 0) -> bool:
        keyboard = bot.panel().callback(f"✨ Clicked {amount} times", clicked, amount + 1)
        await ctx.edit("You clicked the button!", keyboard)
        return True

    @bot.action()
    async def cancel(ctx: Context) -> bool:
        await ctx.reset()
        await ctx.edit("Cancelled.")
        return True

    @bot.action()
    async def handle_age(ctx: Context) -> bool:
        age = int(ctx.text) if ctx.text and ctx.text.isdigit() else 0
        if not 0 < age < 150:
            await ctx.reply("Please send your age as a number.", bot.panel().callback("Cancel", cancel))
            return True
        ages[ctx.user_id] = age
        await ctx.reset()
        await ctx.reply(f"<b>Saved.</b> Your age is {age}.")
        return True

    @bot.on("/start")
    async def start(ctx: Context) -> bool:
        keyboard = bot.panel().callback("✨ Click me!", clicked, 1).row().text("Placeholder")
        await ctx.reply("Welcome!", keyboard)
        return True

    @bot.on("/age")
    async def ask_age(ctx: Context) -> bool:
        await ctx.input(handle_age, allowed="cancel")
        await ctx.reply("How old are you?", bot.panel().callback("Cancel", cancel))
        return True

    @bot.always_on("/reset")
    async def reset(ctx: Context) -> bool:
        await ctx.reset()
        await ctx.reply("State cleared.")
        return True


def main() -> None:
    """Start polling or the webhook server.

    Raises:
        EnvironmentError: If ``BOT_TOKEN`` is not set.
    """
    if not config.BOT_TOKEN:
        raise EnvironmentError("BOT_TOKEN environment variable is not set or is empty.")

    SwitchboardLogger.set_level(getattr(logging, config.LOG_LEVEL, logging.INFO))
    bot = build_bot(config.BOT_TOKEN)

    if not config.WEBHOOK_URL:
        logger.info("Switchboard bot is running. Polling for updates (async)...")
        asyncio.run(bot.start_polling())
        return

    asyncio.run(bot.ensure_webhook(config.WEBHOOK_URL, secret_token=config.WEBHOOK_SECRET))
    app = bot.webhook_app(secret_token=config.WEBHOOK_SECRET, path=config.WEBHOOK_PATH)
    logger.info("Switchboard bot is running. Serving webhook", extra={"port": config.WEBHOOK_PORT})
    uvicorn.run(
        app,
        host=config.WEBHOOK_HOST,
        port=config.WEBHOOK_PORT,
        ssl_certfile=config.WEBHOOK_CERT,
        ssl_keyfile=config.WEBHOOK_KEY,
        log_config=None,
    )


if __name__ == "__main__":
    main()
