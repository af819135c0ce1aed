"""Runtime logging helpers."""

import os
import sys
from typing import Optional

from loguru import logger

LOG_LEVEL_ENV = "STEPEVAL_LOG_LEVEL"

_FORMAT = "{time:HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} | {message}"


def level_from_env() -> Optional[str]:
    """Read the log level from STEPEVAL_LOG_LEVEL, or None when unset."""
    level = os.getenv(LOG_LEVEL_ENV, "").strip()
    return level.upper() or None


def configure_logging(level: str = "INFO") -> None:
    """Send stepeval's log records to stderr at the given level.

    The package is silent until this is called.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=_FORMAT,
        backtrace=False,
        diagnose=False,
    )
    logger.enable("stepeval")
