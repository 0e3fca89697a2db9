"""Logging utilities for numopt.

Minimizers log iteration progress at DEBUG and recoveries (resets, skipped
updates, bracket expansions) at DEBUG or INFO. Output is silent by default.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

_DEFAULT_LEVEL = logging.WARNING
_DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
_ROOT_NAME = "numopt"
_default_stream: Optional[TextIO] = None

_loggers: dict[str, logging.Logger] = {}


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return level


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get or create a cached logger under the ``numopt`` namespace.

    Args:
        name: Logger name, usually ``__name__`` of the calling module. Names
            outside the namespace are prefixed with ``numopt.``. ``None``
            returns the package logger.

    Returns:
        Configured logger instance.

    Example:
        >>> from numopt.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.debug("iteration %d", 3)
    """
    if name is None:
        name = _ROOT_NAME
    if name == _ROOT_NAME or name.startswith(_ROOT_NAME + "."):
        logger_name = name
    else:
        logger_name = f"{_ROOT_NAME}.{name}"

    if logger_name in _loggers:
        return _loggers[logger_name]

    logger = logging.getLogger(logger_name)
    if not logger.handlers:
        logger.setLevel(_DEFAULT_LEVEL)
        handler = logging.StreamHandler(_default_stream or sys.stderr)
        handler.setLevel(_DEFAULT_LEVEL)
        handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False

    _loggers[logger_name] = logger
    return logger


def set_log_level(level: int | str) -> None:
    """Set the level of every numopt logger, including ones created later.

    Args:
        level: ``logging`` level constant or its name (``"DEBUG"``, ...).
    """
    global _DEFAULT_LEVEL
    level = _resolve_level(level)
    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
    _DEFAULT_LEVEL = level


def configure_logging(
    level: int | str = logging.WARNING,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Replace the handlers of all numopt loggers.

    Args:
        level: Logging level (default: WARNING).
        format_string: Record format. Defaults to ``[LEVEL] name: message``.
        stream: Output stream (default: ``sys.stderr``).

    Example:
        >>> import logging
        >>> from numopt.logging import configure_logging
        >>> configure_logging(level=logging.DEBUG)
    """
    global _DEFAULT_LEVEL, _DEFAULT_FORMAT, _default_stream
    level = _resolve_level(level)
    if stream is None:
        stream = sys.stderr
    if format_string is not None:
        _DEFAULT_FORMAT = format_string
    formatter = logging.Formatter(_DEFAULT_FORMAT)

    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        handler = logging.StreamHandler(stream)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    _DEFAULT_LEVEL = level
    _default_stream = stream


__all__ = ["configure_logging", "get_logger", "set_log_level"]
