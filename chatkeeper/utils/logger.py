"""Logging setup shared by the chat store (stdlib logging) and the HTTP app (loguru)."""
import logging
import os
import sys

from loguru import logger as _loguru

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _level_name() -> str:
    name = os.getenv("CHATKEEPER_LOG_LEVEL", "INFO").upper()
    return name if name in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger with basic configuration.

    Log level can be controlled via CHATKEEPER_LOG_LEVEL env var. Default INFO.
    """
    level = getattr(logging, _level_name())
    # Configure root logger only once.
    if not logging.getLogger().handlers:
        logging.basicConfig(format=LOG_FORMAT, level=level)
    logger = logging.getLogger(name or "chatkeeper")
    logger.setLevel(level)
    return logger


def configure_logging() -> None:
    """Point loguru's sink at stderr with the same level as the stdlib loggers."""
    _loguru.remove()
    _loguru.add(sys.stderr, level=_level_name())
