"""
Logging setup for jobrelay.

All modules log through ``logging.getLogger(__name__)``. configure_logging()
attaches handlers to the ``jobrelay`` logger only, so host applications keep
control of the root logger.
"""

from __future__ import annotations

import logging
from pathlib import Path

LOGGER_NAME = "jobrelay"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Marks handlers installed by configure_logging so reconfiguring replaces them
_HANDLER_ATTR = "_jobrelay_handler"


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    fmt: str = LOG_FORMAT,
) -> logging.Logger:
    """
    Configure the ``jobrelay`` logger.

    Safe to call repeatedly: handlers from a previous call are replaced.

    Args:
        level: Level name or number.
        log_file: Optional file to log to in addition to stderr.
        fmt: Log record format.

    Returns:
        The configured ``jobrelay`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(fmt)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_ATTR, True)
        logger.addHandler(handler)

    return logger
