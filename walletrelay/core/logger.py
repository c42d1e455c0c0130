from __future__ import annotations

import logging
import os
from typing import Optional


LOGGER_NAME = "walletrelay"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LOGGER: Optional[logging.Logger] = None


def _level_from_env() -> int:
    name = os.getenv("RELAY_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_logger() -> logging.Logger:
    """Package logger shared by the relay client and the HTTP bridge."""

    global _LOGGER
    if _LOGGER is None:
        logger = logging.getLogger(LOGGER_NAME)
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
        logger.setLevel(_level_from_env())
        _LOGGER = logger
    return _LOGGER
