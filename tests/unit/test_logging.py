"""Tests for logging setup and the virtual user logger."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from rampforge._internal.logging import (
    VirtualUserLogger,
    _JsonFormatter,
    get_logger,
    get_vu_logger,
    setup_logging,
)


@pytest.fixture
def rampforge_logger():
    logger = logging.getLogger("rampforge")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    logger.handlers.clear()
    yield logger
    logger.handlers[:], logger.level, logger.propagate = saved


def _record(msg: str = "hello %s", *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="rampforge.engine.pool",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args or ("world",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSetupLogging:
    def test_installs_single_handler(self, rampforge_logger):
        setup_logging(logging.DEBUG)
        setup_logging(logging.WARNING)
        assert len(rampforge_logger.handlers) == 1
        assert rampforge_logger.level == logging.WARNING
        assert rampforge_logger.handlers[0].level == logging.WARNING
        assert rampforge_logger.propagate is False

    def test_json_format(self, rampforge_logger):
        setup_logging(json_format=True)
        assert isinstance(rampforge_logger.handlers[0].formatter, _JsonFormatter)

    def test_get_logger_namespace(self):
        assert get_logger("engine.pool").name == "rampforge.engine.pool"


class TestJsonFormatter:
    def test_basic_fields(self):
        entry = json.loads(_JsonFormatter().format(_record()))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "rampforge.engine.pool"
        assert entry["message"] == "hello world"
        assert "timestamp" in entry
        assert "scenario" not in entry

    def test_context_fields(self):
        entry = json.loads(_JsonFormatter().format(_record(scenario="browse", vu_id=7)))
        assert entry["scenario"] == "browse"
        assert entry["vu_id"] == 7

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(_JsonFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


class TestVirtualUserLogger:
    def test_prefix_and_extra(self):
        adapter = get_vu_logger("engine.virtual_user", "browse", 3)
        assert isinstance(adapter, VirtualUserLogger)
        msg, kwargs = adapter.process("Task failed", {})
        assert msg == "[browse#3] Task failed"
        assert kwargs["extra"] == {"scenario": "browse", "vu_id": 3}

    def test_caller_extra_merged(self):
        adapter = get_vu_logger("engine.virtual_user", "browse", 3)
        _, kwargs = adapter.process("x", {"extra": {"task": "index"}})
        assert kwargs["extra"]["task"] == "index"
        assert kwargs["extra"]["vu_id"] == 3
