"""Logging configuration for authgrant.

Provides structured logging setup with configurable levels
and consistent formatting across the library.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from authgrant.config import AuthConfig

# Package logger name
LOGGER_NAME = "authgrant"

# Log format
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Libraries driven by authgrant that log every request or connection
DEPENDENCY_LOGGERS = ("httpx", "httpcore", "uvicorn", "uvicorn.error", "keyring")

# Track if logging has been set up to prevent duplicate handlers
_logging_configured = False


def setup_logging(config: AuthConfig) -> None:
    """Configure logging for the library.

    Sets up the package logger with the configured log level and format,
    and holds the HTTP, listener and keyring libraries at WARNING or above.
    This function is idempotent - calling it multiple times will not
    create duplicate handlers.

    Args:
        config: Configuration containing the log_level setting
    """
    global _logging_configured

    log_level = getattr(logging, config.log_level.value)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    _quiet_dependencies(log_level)

    if _logging_configured:
        for handler in logger.handlers:
            handler.setLevel(log_level)
        return

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    _logging_configured = True

    logger.debug("Logging configured with level %s", config.log_level.value)


def _quiet_dependencies(log_level: int) -> None:
    level = max(log_level, logging.WARNING)
    for name in DEPENDENCY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Returns a child logger of the package logger, ensuring
    consistent formatting and configuration.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Logger instance
    """
    if name.startswith(LOGGER_NAME):
        return logging.getLogger(name)

    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def reset_logging() -> None:
    """Reset logging configuration.

    Used primarily for testing to allow re-initialization
    of the logging setup.
    """
    global _logging_configured
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = True
    for name in DEPENDENCY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)
    _logging_configured = False
