"""Logging setup: one coloured stderr handler on the ``goldrun`` logger."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

import colorlog

QUIET = -1

_FORMAT = '%(log_color)s[%(levelname).1s]%(reset)s %(name)s: %(message)s'
_LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'white',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bold',
}

_handler: Optional[logging.Handler] = None


def level_for_verbosity(verbosity: int) -> int:
    """Map ``-q`` / default / ``-v`` / ``-vv`` to a logging level."""
    if verbosity <= QUIET:
        return logging.CRITICAL + 1
    if verbosity == 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int, stream: Optional[TextIO] = None) -> logging.Logger:
    """Install (or reconfigure) the package handler and return the package logger."""
    global _handler

    logger = logging.getLogger('goldrun')
    if _handler is not None:
        logger.removeHandler(_handler)

    stream = stream or sys.stderr
    _handler = colorlog.StreamHandler(stream)
    # Colours only when the stream is a terminal.
    _handler.setFormatter(colorlog.ColoredFormatter(_FORMAT, log_colors=_LOG_COLORS, stream=stream))
    logger.addHandler(_handler)
    logger.setLevel(level_for_verbosity(verbosity))
    return logger
