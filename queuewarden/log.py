"""Logging configuration using loguru.

The operator logs with a full, timestamped format.  The launcher runs in a
user's terminal next to the command's own output, so it gets a compact
format instead.  Both intercept stdlib logging, so the kubernetes client and
modules using ``logging.getLogger(__name__)`` end up in the same sink.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

OPERATOR_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
CLIENT_FORMAT = "<level>{level: <7}</level> <level>{message}</level>"

# The kubernetes client logs every request body at DEBUG.
_NOISY_LOGGERS = ("kubernetes", "urllib3", "websocket")


class _InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the caller of logging.*, not the logging module itself.
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, client: bool = False) -> None:
    """Make loguru the only sink, writing to stderr.

    *client* selects the compact launcher format.  Call once per process.
    """
    level = level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=CLIENT_FORMAT if client else OPERATOR_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={}, client={})", level, client)
