"""Application configuration — environment variables and derived constants.

Loads the bot token, callback signing, state cache, dispatch limits and
webhook settings from the environment via ``python-dotenv``.  All values are
resolved at import time so other modules can ``from config import …``
without repeated lookups.
"""

# ── stdlib ───────────────────────────────────────────────────────────────────
import os

# ── third-party ──────────────────────────────────────────────────────────────
from dotenv import load_dotenv

# ── core ─────────────────────────────────────────────────────────────────────
from core.logger import SwitchboardLogger

# ── Environment bootstrap ────────────────────────────────────────────────────
load_dotenv()

# ── Logger (used for startup diagnostics at the bottom of this module) ───────
logger = SwitchboardLogger.get_logger()


# ── Helper functions (private) ───────────────────────────────────────────────


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean flag; ``1/true/yes/on`` (any case) count as true."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: float, cast: type = float) -> float:
    """Read a numeric setting, falling back to *default* on bad input."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logger.warning("Ignoring non-numeric setting", extra={"setting": name, "value": raw})
        return default


def _env_str(name: str) -> str | None:
    raw = os.environ.get(name)
    return raw.strip() if raw and raw.strip() else None


# ── Public constants ─────────────────────────────────────────────────────────

BOT_TOKEN: str | None = _env_str("BOT_TOKEN")
API_BASE_URL: str = _env_str("API_BASE_URL") or "https://api.telegram.org"

# Callback tokens
SIGN_CALLBACKS: bool = _env_bool("SIGN_CALLBACKS", True)
SIGN_LENGTH: int = int(_env_number("SIGN_LENGTH", 6, int))
CALLBACK_SECRET: str | None = _env_str("CALLBACK_SECRET")

# State cache
STATE_UNLOAD_AFTER: float = _env_number("STATE_UNLOAD_AFTER", 60.0)
STATE_MAX_SIZE: int = int(_env_number("STATE_MAX_SIZE", 100, int))
STATE_SWEEP_INTERVAL: float = _env_number("STATE_SWEEP_INTERVAL", 1.0)

# Dispatch
UPDATE_TIMEOUT: float | None = _env_number("UPDATE_TIMEOUT", 60.0) or None
MAX_CHAIN_DEPTH: int = int(_env_number("MAX_CHAIN_DEPTH", 10, int))

# Webhook (polling is used when WEBHOOK_URL is unset)
WEBHOOK_URL: str | None = _env_str("WEBHOOK_URL")
WEBHOOK_SECRET: str | None = _env_str("WEBHOOK_SECRET")
WEBHOOK_PATH: str = _env_str("WEBHOOK_PATH") or "/"
WEBHOOK_HOST: str = _env_str("WEBHOOK_HOST") or "0.0.0.0"
WEBHOOK_PORT: int = int(_env_number("WEBHOOK_PORT", 3000, int))
WEBHOOK_CERT: str | None = _env_str("WEBHOOK_CERT")
WEBHOOK_KEY: str | None = _env_str("WEBHOOK_KEY")

LOG_LEVEL: str = (_env_str("LOG_LEVEL") or "INFO").upper()


# ── Startup diagnostics ─────────────────────────────────────────────────────

if BOT_TOKEN:
    logger.info("Config loaded — BOT_TOKEN is set", extra={"api_base_url": API_BASE_URL})
else:
    logger.warning("Config loaded — BOT_TOKEN is NOT set")

if not SIGN_CALLBACKS:
    logger.warning("Callback signing is disabled; callback data can be forged")
elif not CALLBACK_SECRET:
    logger.info("CALLBACK_SECRET not set, callback tokens are signed with the bot token")

if WEBHOOK_URL:
    logger.info("Webhook mode", extra={"webhook_url": WEBHOOK_URL, "port": WEBHOOK_PORT, "tls": bool(WEBHOOK_CERT)})
    if not WEBHOOK_SECRET:
        logger.warning("WEBHOOK_SECRET not set — webhook requests are not authenticated")
else:
    logger.info("Polling mode (WEBHOOK_URL not set)")
