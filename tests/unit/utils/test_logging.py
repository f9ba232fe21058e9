"""Tests for logging configuration utilities."""

from __future__ import annotations

import json
import logging
from pathlib import Path
import sys

import pytest

from stylegen.core.utils.logging import StructuredJSONFormatter, configure_logging, get_logger


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="stylegen.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="hello %s",
        args=("world",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJSONFormatter:
    def test_format(self) -> None:
        entry = json.loads(StructuredJSONFormatter().format(_record(request_id="hero")))
        assert entry["level"] == "WARNING"
        assert entry["message"] == "hello world"
        assert entry["context"]["logger_name"] == "stylegen.test"
        assert entry["context"]["request_id"] == "hero"
        assert entry["timestamp"].endswith("+00:00")

    def test_exception_info(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        entry = json.loads(StructuredJSONFormatter().format(record))
        assert entry["context"]["error_type"] == "ValueError"
        assert entry["context"]["error_message"] == "bad"
        assert "Traceback" in entry["context"]["stack_trace"]


class TestConfigureLogging:
    def test_structured_file(self, tmp_path: Path, restore_root_logger: None) -> None:
        log_file = tmp_path / "stylegen.jsonl"
        configure_logging(level="debug", filename=str(log_file), structured=True)

        logging.getLogger("stylegen.test").debug("written")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["message"] == "written"
        assert logging.getLogger().level == logging.DEBUG

    def test_noisy_loggers_quieted(self, restore_root_logger: None) -> None:
        configure_logging(level="INFO")
        assert logging.getLogger("httpx").level == logging.ERROR
        assert logging.getLogger("google_genai").level == logging.ERROR


class TestGetLogger:
    def test_plain(self) -> None:
        assert isinstance(get_logger("stylegen.x"), logging.Logger)

    def test_with_context(self) -> None:
        adapter = get_logger("stylegen.x", request_id="hero")
        assert isinstance(adapter, logging.LoggerAdapter)
        assert adapter.extra == {"request_id": "hero"}
