"""Tests for logging setup."""

import logging

from consilium.utils.logging import ROOT_LOGGER, setup_logging


def test_setup_is_idempotent():
    setup_logging("DEBUG")
    logger = setup_logging("WARNING")
    assert logger.name == ROOT_LOGGER
    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1


def test_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "consilium.log"
    logger = setup_logging("INFO", str(log_file))
    logging.getLogger("consilium.dispatch").info("hello")
    for handler in logger.handlers:
        handler.flush()
    assert "hello" in log_file.read_text()
    setup_logging("INFO")


def test_http_client_loggers_quieted():
    setup_logging("INFO")
    assert logging.getLogger("httpx").level == logging.WARNING
    setup_logging("DEBUG")
    assert logging.getLogger("httpx").level == logging.DEBUG
    setup_logging("INFO")
