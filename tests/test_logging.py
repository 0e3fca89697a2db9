"""Tests for logging utilities."""

import logging
from io import StringIO

import numpy as np

from numopt.logging import (
    configure_logging,
    get_logger,
    set_log_level,
)
from numopt.optimize import golden_section, nelder_mead


def test_get_logger_returns_logger():
    """Test that get_logger returns a logger instance."""
    logger = get_logger("test_module")
    assert isinstance(logger, logging.Logger)
    assert logger.name.startswith("numopt.")


def test_get_logger_keeps_package_names():
    logger = get_logger("numopt.optimize.scalar")
    assert logger.name == "numopt.optimize.scalar"
    assert get_logger().name == "numopt"


def test_get_logger_caching():
    """Test that get_logger caches loggers."""
    logger1 = get_logger("test_module")
    logger2 = get_logger("test_module")
    assert logger1 is logger2


def test_get_logger_different_modules():
    """Test that different modules get different loggers."""
    logger1 = get_logger("module1")
    logger2 = get_logger("module2")
    assert logger1 is not logger2
    assert logger1.name != logger2.name


def test_set_log_level():
    """Test that set_log_level updates logger levels."""
    logger = get_logger("test_module")

    set_log_level(logging.INFO)
    assert logger.level <= logging.INFO

    set_log_level(logging.WARNING)
    assert logger.level <= logging.WARNING


def test_set_log_level_string():
    """Test that set_log_level accepts string levels."""
    logger = get_logger("test_module")

    set_log_level("DEBUG")
    assert logger.level == logging.DEBUG

    set_log_level("ERROR")
    assert logger.level == logging.ERROR
    set_log_level(logging.WARNING)


def test_configure_logging():
    """Test configure_logging function."""
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)
    try:
        logger = get_logger("test_module")
        logger.debug("Debug message")
        assert "Debug message" in stream.getvalue()
        assert "[DEBUG] numopt.test_module" in stream.getvalue()
    finally:
        configure_logging(level=logging.WARNING)


def test_logger_does_not_propagate():
    """Test that loggers don't propagate to root logger."""
    logger = get_logger("test_module")
    assert logger.propagate is False


def test_minimizers_are_silent_by_default():
    stream = StringIO()
    configure_logging(level=logging.WARNING, stream=stream)
    try:
        nelder_mead(lambda x: float((x - 1.0) @ (x - 1.0)) + 1.0, np.array([3.0, 2.0]))
        assert stream.getvalue() == ""
    finally:
        configure_logging(level=logging.WARNING)


def test_iteration_progress_logged_at_debug():
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)
    try:
        nelder_mead(lambda x: float((x - 1.0) @ (x - 1.0)) + 1.0, np.array([3.0, 2.0]))
        assert "numopt.optimize.nelder_mead" in stream.getvalue()
        assert "iteration" in stream.getvalue()
    finally:
        configure_logging(level=logging.WARNING)


def test_bracket_expansion_logged_at_info():
    stream = StringIO()
    configure_logging(level=logging.INFO, stream=stream)
    try:
        result = golden_section(lambda x: (x - 5.0) ** 2, 0.0, 1.0)
        assert abs(result.x - 5.0) < 1e-4
        assert "expanded bracket" in stream.getvalue()
    finally:
        configure_logging(level=logging.WARNING)
