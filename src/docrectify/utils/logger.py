"""
DocRectify - Logger Module

Package-wide logger and a one-shot logging setup used by the CLI.
"""

import logging

from docrectify.config import LOG_DATE_FORMAT, LOG_FORMAT, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging with the shared format.

    Args:
        verbose: Log at DEBUG level instead of INFO
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logger.setLevel(level)
