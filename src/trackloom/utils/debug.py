"""Logging setup for trackloom.

Modules log through ``logging.getLogger(__name__)``; ``setup_logger`` attaches
the single handler on the ``trackloom`` package logger they all propagate to.
Debug output is switched on by the TRACKLOOM_DEBUG environment variable or the
CLI's ``--verbose`` flag.
"""

import logging
import os
import sys
from typing import Optional

DEBUG_ON = os.getenv("TRACKLOOM_DEBUG", "0") == "1"

LOG_FORMAT = "[%(levelname)s] %(asctime)s %(name)s %(message)s"

_logger: Optional[logging.Logger] = None


def setup_logger(level: Optional[int] = None) -> logging.Logger:
    """Configure and return the ``trackloom`` package logger.

    Args:
        level: Explicit level; defaults to DEBUG when TRACKLOOM_DEBUG=1,
            WARNING otherwise.
    """
    global _logger
    logger = _logger or logging.getLogger("trackloom")
    for handler in list(logger.handlers):
        # Follow sys.stderr when it is swapped out (test runners, redirection).
        if type(handler) is not logging.StreamHandler:
            continue
        if handler.stream is not sys.stderr:
            logger.removeHandler(handler)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    if level is None:
        level = logging.DEBUG if DEBUG_ON else logging.WARNING
    logger.setLevel(level)
    _logger = logger
    return logger
