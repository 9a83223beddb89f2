"""Logging configuration for misskey-context."""

import sys

from loguru import logger


def configure_logging(*, verbose: bool = False) -> None:
    """Send loguru output to stderr; DEBUG also shows the emitting module."""
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG", format="{level.icon} {name}: {message}")
    else:
        logger.add(sys.stderr, level="INFO", format="{level.icon} {message}")
