"""Logging configuration for wpair.

All modules log through children of the ``wpair`` logger. The Telegram bot
token is part of every Bot API URL, so HTTP client errors can echo it; handlers
mask it before anything is written.
"""

import logging
from pathlib import Path

from wpair.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
REDACTED = "***"

_logger: logging.Logger | None = None


class RedactingFilter(logging.Filter):
    """Replace secret values in formatted log messages."""

    def __init__(self, secrets: list[str]):
        super().__init__()
        self._secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True

        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, REDACTED)

        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _handlers(config: Config) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    handlers.append(logging.StreamHandler())
    return handlers


def setup_logging(config: Config) -> logging.Logger:
    """Set up the package logger from configuration.

    Safe to call more than once; later calls return the existing logger.

    Args:
        config: Configuration with log level, optional log file and the bot
            token to redact.

    Returns:
        The ``wpair`` logger.
    """
    global _logger

    if _logger is not None:
        return _logger

    logger = logging.getLogger("wpair")
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    # 2025-01-27 10:30:45 [INFO] message
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    redactor = RedactingFilter([config.telegram.token or ""])

    for handler in _handlers(config):
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        logger.addHandler(handler)

    logger.propagate = False

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers:
            handler.close()
        _logger.handlers.clear()
        _logger.propagate = True
        _logger.setLevel(logging.NOTSET)
        _logger = None
