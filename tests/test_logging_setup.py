"""Tests for structured logging."""

import json
import logging

import pytest

from ratetop.logging_setup import JsonFormatter, configure_logging, get_logger


@pytest.fixture
def clean_logger():
    logger = get_logger()
    saved = list(logger.handlers), logger.level
    logger.handlers.clear()
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])


def test_json_formatter_fields():
    """Test a record is rendered as one JSON object with the event tag."""
    record = logging.LogRecord("ratetop.network", logging.WARNING, __file__, 1, "metric unavailable for %s", ("eth0",), None)
    record.event = "metric_unavailable"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "ratetop.network"
    assert payload["msg"] == "metric unavailable for eth0"
    assert payload["event"] == "metric_unavailable"
    assert "ts_utc" in payload


def test_configure_logging_writes_json_lines(clean_logger, tmp_path):
    """Test child loggers end up in the JSON log file."""
    path = tmp_path / "logs" / "ratetop.log"
    configure_logging(level="DEBUG", path=path)

    logging.getLogger("ratetop.cpu").warning("metric unavailable for cpu")
    for handler in clean_logger.handlers:
        handler.flush()

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert lines[0]["event"] == "logging_configured"
    assert lines[-1]["logger"] == "ratetop.cpu"
    assert lines[-1]["msg"] == "metric unavailable for cpu"


def test_configure_logging_idempotent(clean_logger, tmp_path):
    """Test repeated configuration does not stack handlers."""
    path = tmp_path / "ratetop.log"
    configure_logging(path=path)
    configure_logging(level="WARNING", path=path)

    assert len(clean_logger.handlers) == 1
    assert clean_logger.level == logging.WARNING
