"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from outstream.core.logging import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_json_output_to_stderr(self, capsys):
        configure_logging(json_output=True, level="INFO")
        structlog.get_logger("outstream.test").info("Subscriber connected", subscriber_id=3)

        captured = capsys.readouterr()
        assert captured.out == ""
        record = json.loads(captured.err.strip().splitlines()[-1])
        assert record["event"] == "Subscriber connected"
        assert record["subscriber_id"] == 3
        assert record["level"] == "info"
        assert "_record" not in record

    def test_stdlib_records_share_format(self, capsys):
        configure_logging(json_output=True, level="INFO")
        logging.getLogger("some.library").warning("from stdlib")

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["event"] == "from stdlib"
        assert record["level"] == "warning"

    def test_level_filters(self, capsys):
        configure_logging(json_output=True, level="WARNING")
        structlog.get_logger("outstream.test").info("hidden")
        assert capsys.readouterr().err == ""

    def test_noisy_loggers_stay_at_warning_in_debug(self):
        configure_logging(level="DEBUG")
        assert logging.getLogger("websockets").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("uvicorn.error").level == logging.WARNING
