"""Tests for logging helpers."""

import logging

from rich.logging import RichHandler

from utils.logger import format_duration, setup_logger


def test_format_duration_units():
    assert format_duration(850) == "850ms"
    assert format_duration(2400) == "2.4s"
    assert format_duration(90000) == "1.5min"


def test_setup_logger_does_not_stack_handlers():
    logger = setup_logger("mow_briefs.test_setup", level=logging.DEBUG)
    again = setup_logger("mow_briefs.test_setup", level=logging.DEBUG)

    assert again is logger
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], RichHandler)
    assert logger.level == logging.DEBUG
