"""Logging configuration for jira-context."""

import sys

from loguru import logger

_FORMAT = "{level.icon} {message}"
_DEBUG_FORMAT = "{level.icon} {time:HH:mm:ss.SSS} {name}:{line} {message}"


def configure_logging(*, verbose: bool = False) -> None:
    """Send loguru output to stderr.

    stdout carries ticket reports and the MCP stdio transport, so nothing
    is ever logged there.
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG", format=_DEBUG_FORMAT)
    else:
        logger.add(sys.stderr, level="INFO", format=_FORMAT)
