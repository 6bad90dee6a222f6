"""Tests for log formatting."""

import json
import logging

import pytest

from mirrorhook.logging_config import HumanFormatter, JSONFormatter, setup_logging


def make_record(**extra):
    record = logging.LogRecord(
        "mirrorhook.repository", logging.INFO, __file__, 1, "Mirror ready", None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    """Test extra context fields appear in JSON output."""
    line = JSONFormatter().format(make_record(repository="example.com/acme/widgets"))

    entry = json.loads(line)
    assert entry["level"] == "INFO"
    assert entry["logger"] == "mirrorhook.repository"
    assert entry["message"] == "Mirror ready"
    assert entry["repository"] == "example.com/acme/widgets"


def test_human_formatter():
    """Test the terminal format."""
    line = HumanFormatter().format(make_record())

    assert "INFO" in line
    assert "[repository" in line
    assert line.endswith("Mirror ready")


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_from_environment(monkeypatch, restore_root_logger):
    """Test environment variables select level and format."""
    monkeypatch.setenv("MIRRORHOOK_LOG_LEVEL", "debug")
    monkeypatch.setenv("MIRRORHOOK_LOG_FORMAT", "json")

    setup_logging()

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert isinstance(root.handlers[0].formatter, JSONFormatter)


def test_setup_logging_arguments_win(monkeypatch, restore_root_logger):
    """Test explicit arguments override the environment."""
    monkeypatch.setenv("MIRRORHOOK_LOG_LEVEL", "debug")

    setup_logging("warning", "text")

    root = restore_root_logger
    assert root.level == logging.WARNING
    assert isinstance(root.handlers[0].formatter, HumanFormatter)
