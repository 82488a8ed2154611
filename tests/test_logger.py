"""Tests for the shared logger."""

import logging

from scripts.lib.logger import setup_logger


class _Collect(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestSetupLogger:
    def test_does_not_propagate_to_root(self):
        root = logging.getLogger()
        collected = _Collect()
        root.addHandler(collected)
        try:
            logger = setup_logger("tests.logger.propagation")
            logger.info("once")
        finally:
            root.removeHandler(collected)
        assert logger.propagate is False
        assert collected.records == []

    def test_single_console_handler(self):
        logger = setup_logger("tests.logger.handlers", log_to_file=False)
        setup_logger("tests.logger.handlers", log_to_file=False)
        assert len(logger.handlers) == 1
