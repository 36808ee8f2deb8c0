"""Logging setup for command-line entry points."""

import sys

from loguru import logger


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <7} | {name}:{line} | {message}"


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Replace loguru's default sink with a formatted stderr sink.

    Args:
        level: Minimum level for stderr
        log_file: Optional path for a DEBUG-level file sink rotated at 10 MB
    """
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())
    if log_file:
        logger.add(log_file, format=LOG_FORMAT, level="DEBUG", rotation="10 MB", retention=5)
