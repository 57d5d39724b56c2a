"""Tests for logging configuration."""

import json
import logging

import pytest

from llmux.core.logging_config import JsonFormatter, configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_record(self):
        record = logging.LogRecord(
            "llmux.gateway.server", logging.INFO, __file__, 1, "[%s] hello", ("t1",), None
        )

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "llmux.gateway.server"
        assert data["message"] == "[t1] hello"
        assert "extra" not in data

    def test_extra_fields(self):
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "msg", (), None)
        record.trace_id = "t2"

        data = json.loads(JsonFormatter().format(record))

        assert data["extra"] == {"trace_id": "t2"}


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level_and_file(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "llmux.log"

        configure_logging(level="debug", format="json", file_path=str(log_file), force=True)
        logging.getLogger("llmux.test").debug("written")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert restore_root_logger.level == logging.DEBUG
        assert json.loads(log_file.read_text().splitlines()[-1])["message"] == "written"

    def test_environment(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("LLMUX_LOG_LEVEL", "WARNING")

        configure_logging(force=True)

        assert restore_root_logger.level == logging.WARNING

    def test_quiets_aiohttp(self, restore_root_logger):
        configure_logging(level="DEBUG", force=True)

        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_unknown_level(self, restore_root_logger):
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging(level="LOUD", force=True)

    def test_unknown_format(self, restore_root_logger):
        with pytest.raises(ValueError, match="Unknown log format"):
            configure_logging(level="INFO", format="xml", force=True)  # type: ignore[arg-type]
