"""
Package-wide logger for HubFetch.
"""

import logging
import sys


LOGGER_NAME = "HubFetch"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _build_logger() -> logging.Logger:
    """Create the package logger with a single stderr handler."""

    _logger = logging.getLogger(LOGGER_NAME)
    if not _logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)
    return _logger


logger = _build_logger()


__all__ = ["logger", "LOGGER_NAME"]
