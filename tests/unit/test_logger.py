"""
Unit Tests for the Backend Logger
"""

import logging
import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "levely_companion", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))

from lib.logger import ColoredFormatter, StructuredLogger, get_logger

LOGGER_NAME = "tests.levely.logger"


@pytest.fixture
def logger(caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    return get_logger(LOGGER_NAME)


class TestStructuredLogger:

    def test_success_is_info_with_check_mark(self, logger, caplog):
        logger.success("Quiz recorded")

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == "✅ Quiz recorded"

    def test_debug_renders_data_below_message(self, logger, caplog):
        logger.debug("Using stored history", {"messages": 12, "session": "s1"})

        record = caplog.records[-1]
        assert record.levelno == logging.DEBUG
        assert record.getMessage() == "Using stored history\n    messages : 12\n    session  : s1"

    def test_debug_is_filtered_at_info(self, caplog):
        caplog.set_level(logging.INFO, logger=LOGGER_NAME)
        get_logger(LOGGER_NAME).debug("hidden")

        assert [r for r in caplog.records if r.getMessage() == "hidden"] == []

    def test_error_carries_exception(self, logger, caplog):
        logger.error("Store failed", error=RuntimeError("boom"))

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.getMessage() == "Store failed Error: RuntimeError: boom"

    def test_wraps_given_logger(self):
        inner = logging.getLogger("tests.levely.inner")
        assert StructuredLogger("x", inner).logger is inner


class TestColoredFormatter:

    def test_component_icon_from_logger_name(self):
        record = logging.LogRecord("levely_companion.companion", logging.INFO, __file__, 1, "hai", None, None)

        line = ColoredFormatter(use_colors=False).format(record)

        assert "🧭 INFO" in line
        assert line.endswith("levely_companion.companion | hai")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
