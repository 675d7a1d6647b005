"""SwitchboardLogger — singleton JSON logger with console and rotating file output.

Every module obtains the same :class:`logging.Logger` through
:meth:`SwitchboardLogger.get_logger` and attaches update-specific context
(``update_id``, ``user_id``, ``action``, ``api_endpoint`` …) through the
``extra`` parameter.  Records are written to stdout and to
``logs/switchboard.log`` as single-line JSON objects.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional


class _JsonFormatter(logging.Formatter):
    """Format every log record as a single-line JSON object.

    Standard fields (timestamp, level, logger, message, module, func_name)
    are always present.  Keys passed via ``extra`` are merged in, so a call
    such as::

        logger.warning(
            "Callback signature mismatch",
            extra={"update_id": 7, "user_id": 42, "action": "clicked"},
        )

    produces::

        {"timestamp": "…", "level": "WARNING", …, "update_id": 7, "user_id": 42, "action": "clicked"}
    """

    # Standard LogRecord keys; anything else came in through extra.
    _BUILTIN_ATTRS: frozenset[str] = frozenset(vars(logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None,
    ))) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        """Serialize *record* to a JSON string."""
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func_name": record.funcName,
        }

        for key, value in record.__dict__.items():
            if key not in self._BUILTIN_ATTRS and key not in log_entry:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def _level_from_env(default: int) -> int:
    """Resolve ``LOG_LEVEL`` (name or number) to a logging level."""
    raw = os.environ.get("LOG_LEVEL")
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    resolved = logging.getLevelName(raw.upper())
    return resolved if isinstance(resolved, int) else default


class SwitchboardLogger:
    """Singleton logger with dual handlers (console + rotating file).

    Usage::

        from core.logger import SwitchboardLogger

        logger = SwitchboardLogger.get_logger()
        logger.info("Polling started")
    """

    _instance: Optional["SwitchboardLogger"] = None
    _logger: Optional[logging.Logger] = None

    _LOGGER_NAME: str = "switchboard"
    _LOG_DIR: str = os.environ.get("LOG_DIR", "logs")
    _LOG_FILE: str = "switchboard.log"
    _MAX_BYTES: int = 5 * 1024 * 1024  # 5 MB
    _BACKUP_COUNT: int = 5

    def __new__(cls, level: int = logging.INFO) -> "SwitchboardLogger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init_logger(_level_from_env(level))
        return cls._instance

    # ------------------------------------------------------------------
    # Initialisation helpers
    # ------------------------------------------------------------------

    def _init_logger(self, level: int) -> None:
        """Create the underlying :class:`logging.Logger` and attach handlers."""
        self._logger = logging.getLogger(self._LOGGER_NAME)
        self._logger.setLevel(level)

        # Avoid duplicate handlers if the module is reloaded.
        if self._logger.handlers:
            return

        formatter = _JsonFormatter()

        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        os.makedirs(self._LOG_DIR, exist_ok=True)
        log_path = os.path.join(self._LOG_DIR, self._LOG_FILE)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=self._MAX_BYTES,
            backupCount=self._BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def get_logger(level: int = logging.INFO) -> logging.Logger:
        """Return the shared :class:`logging.Logger` instance.

        Creates the singleton on first call; later calls return the same
        logger regardless of *level*.  ``LOG_LEVEL`` in the environment
        overrides *level* on first creation.
        """
        instance = SwitchboardLogger(level)
        assert instance._logger is not None  # guaranteed by __new__
        return instance._logger

    @staticmethod
    def set_level(level: int) -> None:
        """Change the level of the logger and all of its handlers."""
        logger = SwitchboardLogger.get_logger()
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)

    def cleanup(self) -> None:
        """Flush and close all handlers attached to the logger."""
        if self._logger is None:
            return
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)
