"""Tests for logging configuration module."""

from __future__ import annotations

import logging

import pytest

from authgrant.config import AuthConfig, LogLevel
from authgrant.logging_config import (
    DEPENDENCY_LOGGERS,
    LOGGER_NAME,
    get_logger,
    reset_logging,
    setup_logging,
)


class TestLoggingSetup:
    """Tests for logging setup."""

    @pytest.fixture(autouse=True)
    def reset_logging_state(self) -> None:
        """Reset logging state before each test."""
        reset_logging()

    def test_setup_logging_creates_handler(self) -> None:
        """Test that setup_logging creates a handler."""
        config = AuthConfig(log_level=LogLevel.DEBUG)
        setup_logging(config)

        logger = logging.getLogger(LOGGER_NAME)
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG

    def test_setup_logging_idempotent(self) -> None:
        """Test that setup_logging is idempotent."""
        config = AuthConfig(log_level=LogLevel.DEBUG)

        setup_logging(config)
        setup_logging(config)
        setup_logging(config)

        logger = logging.getLogger(LOGGER_NAME)
        assert len(logger.handlers) == 1

    def test_setup_logging_updates_level(self) -> None:
        """Test that setup_logging updates level on subsequent calls."""
        config_debug = AuthConfig(log_level=LogLevel.DEBUG)
        config_info = AuthConfig(log_level=LogLevel.INFO)

        setup_logging(config_debug)
        logger = logging.getLogger(LOGGER_NAME)
        assert logger.level == logging.DEBUG

        setup_logging(config_info)
        assert logger.level == logging.INFO

    @pytest.mark.parametrize(
        ("level", "expected"),
        [
            (LogLevel.DEBUG, logging.WARNING),
            (LogLevel.INFO, logging.WARNING),
            (LogLevel.ERROR, logging.ERROR),
        ],
    )
    def test_dependency_loggers_quieted(self, level: LogLevel, expected: int) -> None:
        """Test that HTTP, listener and keyring loggers stay at WARNING or above."""
        setup_logging(AuthConfig(log_level=level))

        for name in DEPENDENCY_LOGGERS:
            assert logging.getLogger(name).level == expected

    def test_dependency_loggers_follow_level_changes(self) -> None:
        """Test that reconfiguring also moves the dependency loggers."""
        setup_logging(AuthConfig(log_level=LogLevel.INFO))
        setup_logging(AuthConfig(log_level=LogLevel.CRITICAL))

        assert logging.getLogger("httpx").level == logging.CRITICAL


class TestGetLogger:
    """Tests for get_logger function."""

    @pytest.fixture(autouse=True)
    def reset_logging_state(self) -> None:
        """Reset logging state before each test."""
        reset_logging()

    def test_get_logger_returns_child_logger(self) -> None:
        """Test that get_logger returns a child logger."""
        logger = get_logger("test_module")
        assert logger.name == f"{LOGGER_NAME}.test_module"

    def test_get_logger_with_package_name(self) -> None:
        """Test that get_logger handles full package name."""
        logger = get_logger(f"{LOGGER_NAME}.submodule")
        assert logger.name == f"{LOGGER_NAME}.submodule"

    def test_get_logger_consistent(self) -> None:
        """Test that get_logger returns same logger for same name."""
        logger1 = get_logger("test_module")
        logger2 = get_logger("test_module")
        assert logger1 is logger2


class TestResetLogging:
    """Tests for reset_logging function."""

    def test_reset_restores_propagation(self) -> None:
        """Test that reset removes handlers and re-enables propagation."""
        setup_logging(AuthConfig(log_level=LogLevel.WARNING))
        logger = logging.getLogger(LOGGER_NAME)
        assert logger.propagate is False

        reset_logging()

        assert logger.handlers == []
        assert logger.propagate is True
        assert logging.getLogger("httpx").level == logging.NOTSET

    def test_module_loggers_share_handler(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that library module loggers write through the package handler."""
        setup_logging(AuthConfig(log_level=LogLevel.INFO))

        get_logger("authgrant.oauth.flows").info("token request sent")
        get_logger("authgrant.oauth.flows").debug("hidden")

        err = capsys.readouterr().err
        assert "| INFO     | authgrant.oauth.flows | token request sent" in err
        assert "hidden" not in err
