"""Tests for stepflow.utils.logging_factory module."""
from __future__ import annotations

import logging

import pytest

from stepflow.utils.logging_factory import LoggingFactory


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset LoggingFactory state and root handlers around each test."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    LoggingFactory.reset()
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)
    LoggingFactory.reset()


class TestLoggingFactory:
    """Tests for one-time logging configuration."""

    def test_initialize_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "stepflow.log"
        LoggingFactory.initialize(level="DEBUG", log_file=log_file, log_to_console=False)

        logging.getLogger("stepflow.test").debug("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.exists()
        assert "hello file" in log_file.read_text()
        assert logging.getLogger().level == logging.DEBUG

    def test_second_initialize_ignored(self):
        LoggingFactory.initialize(level=logging.WARNING, log_to_console=False)
        LoggingFactory.initialize(level=logging.DEBUG, log_to_console=False)
        assert logging.getLogger().level == logging.WARNING

    def test_force_reconfigures(self):
        LoggingFactory.initialize(level=logging.WARNING, log_to_console=False)
        LoggingFactory.initialize(level=logging.DEBUG, log_to_console=False, force=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_custom_console_handler(self):
        handler = logging.NullHandler()
        LoggingFactory.initialize(console_handler=handler)
        assert handler in logging.getLogger().handlers

    def test_unknown_level_name_falls_back_to_info(self):
        LoggingFactory.initialize(level="LOUD", log_to_console=False)
        assert logging.getLogger().level == logging.INFO

    def test_http_loggers_quieted(self):
        LoggingFactory.initialize(level=logging.DEBUG, log_to_console=False)
        assert logging.getLogger("httpx").level == logging.WARNING
