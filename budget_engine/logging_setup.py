from __future__ import annotations

import sys

from loguru import logger

from .config import settings


def configure_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with one honoring LOG_LEVEL."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.LOG_LEVEL).upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level:<7} | {name}:{line} - {message}",
    )
