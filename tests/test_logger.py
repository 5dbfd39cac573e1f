"""Unit tests for core.logger."""

import logging

from trade_engine.core.logger import setup_logging


def test_console_quieter_than_file(tmp_path):
    logger = setup_logging("DEBUG", tmp_path / "logs", "run.log", console_level="WARNING")
    try:
        console, file_handler = logger.handlers
        assert logger.level == logging.DEBUG
        assert console.level == logging.WARNING
        assert file_handler.level == logging.DEBUG
        logging.getLogger("trade_engine.trading").debug("fill")
        file_handler.flush()
        assert "fill" in (tmp_path / "logs" / "run.log").read_text(encoding="utf-8")
    finally:
        setup_logging("INFO")


def test_setup_is_idempotent():
    setup_logging("INFO")
    logger = setup_logging("bogus")
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
