"""Logging for the bridge: coloured console output plus a rotating log file.

Timestamps are rendered in TIMEZONE. Credentials that end up in a message
(OAuth token exchanges, service account keys) are masked before any handler
writes the record.
"""

from datetime import datetime
import logging
import logging.config
from logging import Logger
import os
import re

from pytz import timezone

LOGGER_NAME = "drive_recognition_bridge"
LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_RESET = "\033[0m"
_LEVEL_COLORS: dict[int, str] = {
    logging.DEBUG: "\033[2m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
# names accepted by the color= keyword of ColorLogger
_NAMED_COLORS: dict[str, str] = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
}

# chatty third-party loggers, only passed through at debug level
_LIBRARY_LOGGERS = ("httpx", "httpcore", "chromadb", "google.auth", "urllib3")


def resolve_level() -> int:
    """Level from LOG_LEVEL (debug, info, warning, error). Unknown names fall back to info."""
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "info").strip().upper())
    return level if isinstance(level, int) else logging.INFO


class SecretRedactFilter(logging.Filter):
    """Masks credential values in log messages."""

    _PATTERN = re.compile(r"(refresh_token|client_secret|access_token|private_key)(\"?\s*[=:]\s*\"?)[^&\s\",]+")

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = self._PATTERN.sub(r"\1\2***", message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


class TimezoneFormatter(logging.Formatter):
    def __init__(self, tz_name: str, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()


class ConsoleFormatter(TimezoneFormatter):
    """Colours a line by the color= name of the call, else by its level."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = _NAMED_COLORS.get(getattr(record, "color", None) or "") or _LEVEL_COLORS.get(record.levelno, "")
        return f"{color}{line}{_RESET}" if color else line


class ColorLogger:
    """Logger wrapper whose log methods take an optional ``color=`` keyword.

    Usage::

        logger.info("Stateful reindex done", color="green")

    The colour only shows on the console; the log file stays plain. Everything
    else (setLevel, handlers, isEnabledFor) is delegated to the wrapped logger.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _log(self, level: int, msg, args: tuple, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.DEBUG, msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.INFO, msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.WARNING, msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.ERROR, msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, color, kwargs)

    def getChild(self, suffix: str) -> "ColorLogger":
        return ColorLogger(self._logger.getChild(suffix))

    def __getattr__(self, name):
        return getattr(self._logger, name)


def setup_logging() -> ColorLogger:
    """Configure the root logger once and return the application logger.

    Env:
        LOG_LEVEL: debug, info, warning or error (default info).
        TIMEZONE: tz database name for timestamps (default Europe/Berlin).
        ROOT_DIR: the log file goes to <ROOT_DIR>/logs/app.log (default cwd).
        LOG_FILE_MAX_BYTES: rotation size of the log file (default 5 MiB, 3 backups).
    """
    level = resolve_level()
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    log_dir = os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "logs")
    os.makedirs(log_dir, exist_ok=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redact": {"()": SecretRedactFilter},
        },
        "formatters": {
            "plain": {"()": TimezoneFormatter, "fmt": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name},
            "console": {"()": ConsoleFormatter, "fmt": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "filters": ["redact"],
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "plain",
                "filters": ["redact"],
                "filename": os.path.join(log_dir, "app.log"),
                "maxBytes": int(os.getenv("LOG_FILE_MAX_BYTES", str(5 * 1024 * 1024))),
                "backupCount": 3,
                "encoding": "utf-8",
            },
        },
        "root": {"handlers": ["console", "file"], "level": level},
    })

    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return ColorLogger(logging.getLogger(LOGGER_NAME))
