"""Tests for logging module."""

import logging

from pairlink.config import Config
from pairlink.logging import reset_logging, setup_logging


class TestSetupLogging:
    """Test logging setup."""

    def test_setup_logging_returns_logger(self):
        logger = setup_logging(Config())

        assert isinstance(logger, logging.Logger)
        assert logger.name == "pairlink"
        assert logger.propagate is False

    def test_setup_logging_creates_log_file(self, tmp_path):
        log_file = tmp_path / "subdir" / "test.log"
        logger = setup_logging(Config(log_file=str(log_file)))
        logger.info("test message")

        assert "test message" in log_file.read_text()

    def test_log_format(self, tmp_path):
        log_file = tmp_path / "test.log"
        logger = setup_logging(Config(log_file=str(log_file)))
        logger.warning("formatted")

        line = log_file.read_text().strip()
        assert "[WARNING] pairlink: formatted" in line

    def test_child_loggers_use_handlers(self, tmp_path):
        """Module loggers under pairlink inherit the configuration."""
        log_file = tmp_path / "test.log"
        setup_logging(Config(log_file=str(log_file)))
        logging.getLogger("pairlink.pairing.manager").info("from module")

        assert "from module" in log_file.read_text()

    def test_log_levels_respected(self, tmp_path):
        log_file = tmp_path / "test.log"
        logger = setup_logging(Config(log_file=str(log_file), log_level="WARNING"))
        logger.info("info message")
        logger.warning("warning message")

        content = log_file.read_text()
        assert "info message" not in content
        assert "warning message" in content

    def test_setup_is_idempotent(self):
        first = setup_logging(Config())
        second = setup_logging(Config(log_level="DEBUG"))

        assert first is second
        assert len(first.handlers) == 1

    def test_reset_allows_reconfiguration(self):
        setup_logging(Config())
        reset_logging()
        logger = setup_logging(Config(log_level="DEBUG"))
        assert logger.level == logging.DEBUG

    def test_access_log_shares_handlers(self, tmp_path):
        log_file = tmp_path / "test.log"
        setup_logging(Config(log_file=str(log_file)))
        logging.getLogger("aiohttp.access").info("GET /pair 200")

        assert "aiohttp.access: GET /pair 200" in log_file.read_text()

    def test_unknown_level_falls_back_to_info(self):
        logger = setup_logging(Config(log_level="chatty"))
        assert logger.level == logging.INFO

    def test_reset_closes_file_handler(self, tmp_path):
        log_file = tmp_path / "test.log"
        setup_logging(Config(log_file=str(log_file)))
        reset_logging()

        assert logging.getLogger("pairlink").handlers == []
        assert logging.getLogger("aiohttp.access").handlers == []
