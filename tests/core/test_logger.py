"""
Test suite for logger configuration and Sentry integration.

Run tests:
    pytest tests/core/test_logger.py -v
"""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch
from uuid import uuid4

import pytest

import expense_tracker.core.logger as logger_module
from expense_tracker.core.logger import init_sentry, setup_logger


@pytest.fixture(autouse=True)
def reset_sentry_state():
    """Reset Sentry initialization state before each test."""
    logger_module._sentry_initialized = False
    yield
    logger_module._sentry_initialized = False


@pytest.fixture
def logger_name():
    name = f"test_logger_{uuid4().hex}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestInitSentry:

    def test_init_with_dsn(self):
        with patch("expense_tracker.core.logger.sentry_sdk") as mock_sentry:
            assert init_sentry("https://key@sentry.example.com/1", "production") is True

        kwargs = mock_sentry.init.call_args.kwargs
        assert kwargs["environment"] == "production"
        assert kwargs["send_default_pii"] is False

    def test_init_without_dsn(self):
        with patch("expense_tracker.core.logger.sentry_sdk") as mock_sentry:
            assert init_sentry("") is False

        mock_sentry.init.assert_not_called()

    def test_init_only_once(self):
        with patch("expense_tracker.core.logger.sentry_sdk") as mock_sentry:
            init_sentry("https://key@sentry.example.com/1")
            assert init_sentry("https://key@sentry.example.com/1") is False

        mock_sentry.init.assert_called_once()


class TestSetupLogger:

    def test_creates_file_and_console_handlers(self, tmp_path, logger_name):
        log_file = tmp_path / "logs" / "app.log"

        logger = setup_logger(logger_name, str(log_file), level=logging.DEBUG)

        assert logger.level == logging.DEBUG
        assert log_file.parent.is_dir()
        kinds = {type(h) for h in logger.handlers}
        assert RotatingFileHandler in kinds
        assert logging.StreamHandler in kinds

    def test_writes_formatted_lines(self, tmp_path, logger_name):
        log_file = tmp_path / "app.log"
        logger = setup_logger(logger_name, str(log_file))

        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8")
        assert f"{logger_name} - INFO - hello" in line

    def test_second_call_does_not_duplicate_handlers(self, tmp_path, logger_name):
        log_file = str(tmp_path / "app.log")

        setup_logger(logger_name, log_file)
        logger = setup_logger(logger_name, log_file)

        assert len(logger.handlers) == 2

    def test_sentry_tag_when_initialized(self, tmp_path, logger_name):
        logger_module._sentry_initialized = True

        with patch("expense_tracker.core.logger.sentry_sdk") as mock_sentry:
            setup_logger(logger_name, str(tmp_path / "app.log"), sentry_tag="auth")

        mock_sentry.set_tag.assert_called_once_with("component", "auth")
