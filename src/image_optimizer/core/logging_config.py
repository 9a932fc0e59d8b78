"""Centralized logging configuration for the image optimizer."""

import os
import sys
import logging
from typing import Optional

DEFAULT_LOGGER_NAME = "image-optimizer"


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    Args:
        name: Logger name (defaults to "image-optimizer")
        level: Log level override (defaults to env var or INFO)
        format_type: Logging format ("structured" or "simple")

    Returns:
        Configured logger instance

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple")
    """
    logger = logging.getLogger(name)

    if level:
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        env_level = os.getenv("LOG_LEVEL", "INFO").upper()
        log_level = getattr(logging, env_level, logging.INFO)

    logger.setLevel(log_level)

    # Avoid duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)

        env_format = os.getenv("LOG_FORMAT", format_type).lower()

        if env_format == "structured":
            formatter = logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)-8s | "
                "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Child names are namespaced under the package logger, so
    ``get_logger("codec")`` returns ``image-optimizer.codec``.
    """
    if name != DEFAULT_LOGGER_NAME and not name.startswith(f"{DEFAULT_LOGGER_NAME}."):
        name = f"{DEFAULT_LOGGER_NAME}.{name}"
    return setup_logger(name)


def set_debug_logging() -> None:
    """Switch the package logger and every configured child to DEBUG."""
    manager = logging.Logger.manager
    for logger_name in list(manager.loggerDict):
        if logger_name == DEFAULT_LOGGER_NAME or logger_name.startswith(
            f"{DEFAULT_LOGGER_NAME}."
        ):
            logging.getLogger(logger_name).setLevel(logging.DEBUG)
    logging.getLogger(DEFAULT_LOGGER_NAME).setLevel(logging.DEBUG)


logger = setup_logger()
