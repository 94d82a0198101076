"""Shared logger configuration for the ``inpigreffe`` package."""

from __future__ import annotations

import logging
import os
import sys
from typing import Final

_LOGGER_NAME: Final = "inpigreffe"
_LEVEL_ENV: Final = "INPIGREFFE_LOG_LEVEL"


def _level_from_env(default: int) -> int:
    raw = os.getenv(_LEVEL_ENV, "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def setup_logger(level: int | None = None) -> logging.Logger:
    """Return the ``inpigreffe`` logger, writing to stdout.

    Without an explicit ``level`` the ``INPIGREFFE_LOG_LEVEL`` environment
    variable is used (``DEBUG``, ``INFO``...), falling back to ``INFO``.
    """

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level if level is not None else _level_from_env(logging.INFO))
    logger.propagate = False

    if not any(isinstance(handler, logging.StreamHandler) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s %(name)s - %(message)s", "%H:%M:%S")
        )
        logger.addHandler(handler)

    return logger
