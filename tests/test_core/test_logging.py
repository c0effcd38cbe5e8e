"""Tests for setup_logging — renderer selection and level handling."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from netalert.core.config import LoggingConfig
from netalert.core.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(config=LoggingConfig(level="INFO", format="json"))
        structlog.get_logger("netalert.test").info("incident_created", incident_id="abc")
        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "incident_created"
        assert record["incident_id"] == "abc"
        assert record["level"] == "info"
        assert record["logger"] == "netalert.test"

    def test_level_override(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="WARNING", config=LoggingConfig(level="DEBUG"))
        log = structlog.get_logger("netalert.test")
        log.info("hidden")
        log.warning("shown")
        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_noisy_loggers_quieted(self) -> None:
        setup_logging(config=LoggingConfig(level="INFO"))
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
