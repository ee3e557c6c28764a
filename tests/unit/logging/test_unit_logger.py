# tests/unit/logging/test_unit_logger.py — v2
"""Tests for logging/logger.py: logger factory and formatters."""

from __future__ import annotations

import json
import logging

from seoanalyzer.config.settings import Settings
from seoanalyzer.logging.context import clear_context, set_run_context, set_stage_context
from seoanalyzer.logging.logger import (
    JsonFormatter,
    TextFormatter,
    get_logger,
    setup_logging,
    setup_logging_from_settings,
)


def _record(msg: str = "Hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        set_run_context("run1", "example.com")
        set_stage_context("crawl")
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["context"] == {"run_id": "run1", "domain": "example.com", "stage": "crawl"}

    def test_extra_data(self):
        parsed = json.loads(JsonFormatter().format(_record(data={"evicted": 5})))
        assert parsed["data"] == {"evicted": 5}

    def test_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            import sys
            record = _record()
            record.exc_info = sys.exc_info()
        parsed = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad" in parsed["exception"]


class TestTextFormatter:
    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_format_with_stage(self):
        set_run_context("run42")
        set_stage_context("technical")
        output = TextFormatter().format(_record("Auditing"))
        assert "<run42>" in output
        assert "[technical]" in output


class TestGetLogger:
    def test_returns_logger(self):
        assert get_logger("cache").name == "seoanalyzer.cache"


class TestSetupLogging:
    def teardown_method(self):
        root = logging.getLogger("seoanalyzer")
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()
        root.setLevel(logging.NOTSET)

    def test_json_console(self):
        setup_logging(level="DEBUG", log_format="json")
        root = logging.getLogger("seoanalyzer")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_reinit_does_not_duplicate(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger("seoanalyzer").handlers) == 1

    def test_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "seo.log"
        setup_logging(log_format="text", log_file=str(log_file), rotation="1MB", retention=3)
        root = logging.getLogger("seoanalyzer")
        assert len(root.handlers) == 2
        get_logger("test").warning("to file")
        for handler in root.handlers:
            handler.flush()
        assert "to file" in log_file.read_text(encoding="utf-8")

    def test_from_settings(self, tmp_path):
        settings = Settings(
            _env_file=None, log_level="WARNING", log_format="text",
            log_file=tmp_path / "app.log",
        )
        setup_logging_from_settings(settings)
        root = logging.getLogger("seoanalyzer")
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, TextFormatter)
