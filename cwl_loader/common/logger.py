# cwl_loader/common/logger.py
import json
import logging
import sys
from datetime import datetime, timezone

ROOT_LOGGER_NAME = "cwl_loader"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log collectors in production."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Installs a single stdout handler on the package logger.
    Calling it again replaces the handler, so entry points can reconfigure freely.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Returns a logger under the package logger. A module run with `python -m`
    is named __main__, so it is renamed to stay under the configured handler.
    """
    if name == "__main__":
        name = f"{ROOT_LOGGER_NAME}.__main__"
    elif name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
