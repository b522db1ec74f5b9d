"""Logging helpers shared by routes and utilities."""

from __future__ import annotations

import logging
import sys

from config import LOG_FORMAT, LOG_LEVEL

ROOT_LOGGER_NAME = 'roguewatch'


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the roguewatch hierarchy.

    The stdout handler is attached once to the ``roguewatch`` logger; child
    loggers propagate to it.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(LOG_LEVEL)
    return logging.getLogger(name)
