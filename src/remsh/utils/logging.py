"""Logging setup utilities for remsh.

Configures the ``remsh`` logger hierarchy from the logging section of the
settings. Server and client share it, so each CLI run calls it once.
"""

from __future__ import annotations

import logging
import sys

from remsh.config.settings import LoggingConfig

# Marks handlers installed here so a repeated call can replace them.
_HANDLER_TAG = "_remsh_handler"


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Configure the ``remsh`` logger and return it.

    Installs a stderr handler and, when ``config.file`` is set, a file
    handler. Calling it again swaps out the handlers from the previous
    call instead of stacking new ones; handlers added by other code are
    left alone.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    logger = logging.getLogger("remsh")
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(config.format)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_TAG, True)
        logger.addHandler(handler)

    logger.debug("Logging initialized at %s level", config.level)
    return logger
