"""
logs.py - Logging setup for ghascan

Every module logs through ``logging.getLogger(__name__)``; the CLI calls
``setup_logging`` once so that log records go to stderr and never mix with
report output on stdout.
"""

import logging
import os
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


def resolve_level(level: Optional[Union[str, int]] = None) -> int:
    """Turn a level name (or None, meaning ``$LOG_LEVEL``) into a logging level"""
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(level: Optional[Union[str, int]] = None) -> logging.Logger:
    """
    Configure the ``ghascan`` logger hierarchy

    Args:
        level: Level name or number; defaults to $LOG_LEVEL, then INFO

    Returns:
        The package root logger

    Calling it again replaces the handler a previous call installed.
    """
    logger = logging.getLogger("ghascan")
    logger.setLevel(resolve_level(level))

    for handler in list(logger.handlers):
        if getattr(handler, "_ghascan", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._ghascan = True  # type: ignore[attr-defined]
    logger.addHandler(handler)

    return logger
