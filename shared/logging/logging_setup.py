from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os
import re


debug_mode = os.getenv("LOG_LEVEL", "info").lower() == "debug"
loglevel = logging.INFO if not debug_mode else logging.DEBUG

# download URLs carry an access token in the query string
_TOKEN_PATTERN = re.compile(r"(token=)[^&\s'\"]+", re.IGNORECASE)

_LEVEL_PREFIXES = {
    logging.CRITICAL: "⛔ ",
    logging.ERROR: "⛔ ",
    logging.WARNING: "⚠️ ",
}


class DownloadTokenFilter(logging.Filter):
    """Redact download tokens from log messages and their arguments."""

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = _TOKEN_PATTERN.sub(r"\1***", record.msg)
        if isinstance(record.args, dict):
            record.args = {k: self._redact(v) for k, v in record.args.items()}
        elif record.args:
            record.args = tuple(self._redact(arg) for arg in record.args)
        return True

    @staticmethod
    def _redact(value):
        return _TOKEN_PATTERN.sub(r"\1***", value) if isinstance(value, str) else value


class CustomFormatter(logging.Formatter):
    """Formats timestamps in a configured timezone and marks warnings and errors."""

    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        # the record is shared between handlers, format a copy
        copy = logging.makeLogRecord(record.__dict__)
        copy.msg = _LEVEL_PREFIXES.get(copy.levelno, "") + copy.getMessage()
        copy.args = ()
        return super().format(copy)


def setup_logging() -> logging.Logger:
    """Configure console (and optionally file) logging and return the application logger.

    Reads LOG_LEVEL, LOG_DIR, LOG_TO_FILE and TIMEZONE from the environment.
    """
    log_dir = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
    log_to_file = os.getenv("LOG_TO_FILE", "true").lower() in ("true", "1", "yes")
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")

    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": loglevel,
            "stream": "ext://sys.stdout",
            "filters": ["download_tokens"],
        },
    }
    if log_to_file:
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "standard",
            "level": loglevel,
            "filename": os.path.join(log_dir, "health_records.log"),
            "encoding": "utf-8",
            "filters": ["download_tokens"],
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "download_tokens": {"()": DownloadTokenFilter},
        },
        "formatters": {
            "standard": {
                "()": CustomFormatter,
                "format": "%(asctime)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
                "tz_name": tz_name,
            },
        },
        "handlers": handlers,
        "root": {
            "handlers": list(handlers),
            "level": loglevel,
        },
    })

    # Suppress httpx request logs unless in debug mode
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug_mode else logging.WARNING)

    return logging.getLogger("health_records")
