"""
Tests for logging configuration.
"""

import logging

import pytest

from config.settings import LoggingConfig
from hl_transport.utils.logging_setup import setup_logging, setup_logging_from_config


@pytest.fixture
def root_logger():
    """Restore root logger state after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_only(self, root_logger):
        setup_logging("debug")

        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0], logging.StreamHandler)
        assert logging.getLogger("websockets").level == logging.WARNING

    def test_unknown_level_defaults_to_info(self, root_logger):
        setup_logging("chatty")
        assert root_logger.level == logging.INFO

    def test_file_handler(self, root_logger, tmp_path):
        """Test that a log file is created along with missing parent dirs."""
        log_file = tmp_path / "logs" / "client.log"

        setup_logging_from_config(LoggingConfig(level="WARNING", file_path=str(log_file)))
        logging.getLogger("hl_transport.test").warning("nonce window exceeded")
        for handler in root_logger.handlers:
            handler.flush()

        assert len(root_logger.handlers) == 2
        assert "nonce window exceeded" in log_file.read_text()
