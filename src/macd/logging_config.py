"""Logging configuration for macd."""

import logging
import os
import sys

PACKAGE_LOGGER = "macd"


def get_logger(name: str = PACKAGE_LOGGER, level: str | None = None) -> logging.Logger:
    """Get a configured logger for the package.

    The level comes from ``level`` when given, otherwise from MACD_LOG_LEVEL
    (or LOG_LEVEL), defaulting to WARNING. Log records go to stderr because
    stdout carries the supervision report.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter(
            "[%(levelname)s] %(name)s - %(filename)s:%(lineno)d: %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # Prevent propagation to avoid duplicate logs
        logger.propagate = False

    if level is None:
        if logger.level != logging.NOTSET:
            return logger
        level = os.getenv("MACD_LOG_LEVEL", os.getenv("LOG_LEVEL", "WARNING"))

    level = level.upper()
    # Numeric levels are accepted as strings, e.g. "10"
    logger.setLevel(int(level) if level.isdigit() else level)

    return logger
