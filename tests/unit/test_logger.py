"""
tests/unit/test_logger.py — Structured Logging Tests
"""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from config.settings import LoggingConfig
from observability.logger import get_logger, setup_logging


def _reset_logging():
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    structlog.reset_defaults()


def _records(path):
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture
def log_config(tmp_path):
    yield LoggingConfig(level="debug", log_dir=str(tmp_path / "logs"), console_output=False)
    _reset_logging()


class TestSetupLogging:
    def test_creates_log_dir_and_returns_file(self, log_config):
        log_file = setup_logging(log_config)
        assert log_file.parent.is_dir()
        assert log_file.name == "janus-client.log"

    def test_json_lines_with_bound_context(self, log_config):
        log_file = setup_logging(log_config)
        log = get_logger("signaling.session", session_id=1234)
        log.info("session.created", connection_id="c1")

        record = _records(log_file)[-1]
        assert record["event"] == "session.created"
        assert record["session_id"] == 1234
        assert record["connection_id"] == "c1"
        assert record["level"] == "info"
        assert record["logger"] == "signaling.session"

    def test_level_filtering(self, log_config):
        log_file = setup_logging(log_config.model_copy(update={"level": "WARNING"}))
        log = get_logger("signaling.test")
        log.info("quiet")
        log.warning("loud")
        events = [r["event"] for r in _records(log_file)]
        assert "quiet" not in events
        assert "loud" in events
