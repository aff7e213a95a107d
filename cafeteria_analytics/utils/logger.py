# cafeteria_analytics/utils/logger.py
"""
Logging setup for the service.

Handlers hang off the package logger ("cafeteria_analytics"), so every module
logger created with get_logger(__name__) inherits them while uvicorn keeps its
own access/error loggers. Output goes to the console and to a size-rotated
file (logs/telemetry.log by default).
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from cafeteria_analytics.config import settings

PACKAGE_LOGGER = "cafeteria_analytics"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood the output below WARNING
_QUIET = ("httpx", "httpcore", "paho", "sqlalchemy.engine")


def _log_dir() -> str:
    if settings.LOG_DIR:
        return settings.LOG_DIR
    return os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")


def _setup():
    package = logging.getLogger(PACKAGE_LOGGER)
    if package.handlers:
        return

    level = settings.LOG_LEVEL.upper()
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler()]
    if settings.LOG_TO_FILE:
        log_dir = _log_dir()
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(
            filename=os.path.join(log_dir, "telemetry.log"),
            maxBytes=settings.LOG_FILE_MAX_MB * 1024 * 1024,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        ))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package.addHandler(handler)
    package.setLevel(level)

    for name in _QUIET:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass __name__. Names outside the package are nested under it."""
    _setup()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
