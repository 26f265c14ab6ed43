from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_ROOT = "todosync"


# PUBLIC_INTERFACE
def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the package logger once with a stderr handler.

    Calling this again only adjusts the level, so importing the app several
    times (tests, reloaders) does not stack handlers.
    """
    logger = logging.getLogger(_ROOT)
    if not any(getattr(h, "_todosync", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._todosync = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


# PUBLIC_INTERFACE
def get_logger(name: str) -> logging.Logger:
    """Return a logger for a module of this package."""
    return logging.getLogger(name)
