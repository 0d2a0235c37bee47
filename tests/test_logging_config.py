"""Tests for logging setup and context-bound loggers."""

import json
import logging

import pytest

from universal_parser.logging_config import get_logger, setup_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_file_carries_bound_context(tmp_path, root_logger):
    setup_logging(level="DEBUG", log_dir=str(tmp_path))

    log = get_logger("universal_parser.learning", domain="shop.example")
    log.info("Learned patterns", extra={"strategy": "direct"})
    for handler in root_logger.handlers:
        handler.flush()

    line = json.loads((tmp_path / "parser.log").read_text().splitlines()[-1])
    assert line["message"] == "Learned patterns"
    assert line["level"] == "INFO"
    assert line["logger"] == "universal_parser.learning"
    assert line["domain"] == "shop.example"
    assert line["strategy"] == "direct"
    assert line["source"].startswith("test_logging_config.py:")
    assert "timestamp" in line


def test_console_only_without_log_dir(root_logger):
    setup_logging(level="warning", log_dir="")

    assert root_logger.level == logging.WARNING
    assert not any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_call_site_extra_overrides_bound_context():
    log = get_logger("universal_parser.test", strategy="direct")
    extra = {"strategy": "rendered"}

    _, kwargs = log.process("msg", {"extra": extra})

    assert kwargs["extra"] == {"strategy": "rendered"}
    assert extra == {"strategy": "rendered"}
