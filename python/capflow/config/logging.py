"""Logging configuration for capflow."""

import sys
from typing import Optional

from loguru import logger

from .settings import get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Setup loguru sinks: stderr always, a rotating file when configured."""
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file or settings.LOG_FILE

    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        logger.add(
            log_file,
            level=level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
    logger.debug("Logging configured (level={}, file={})", level, log_file)
