"""Unit tests for structured logging configuration."""

from __future__ import annotations

import json
import logging

from log_config import (
    ContextFilter,
    JsonFormatter,
    PlainFormatter,
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    log_context,
)


def _record(message: str = "Firing started") -> logging.LogRecord:
    record = logging.LogRecord("scheduler.pipeline", logging.INFO, __file__, 1, message, (), None)
    ContextFilter().filter(record)
    return record


def test_log_context_binds_and_restores() -> None:
    """Context values are visible inside the block only."""
    clear_context()
    with log_context({"template_id": "rent", "firing_id": None}):
        assert get_context() == {"template_id": "rent"}
    assert get_context() == {}


def test_bind_and_clear_context_keys() -> None:
    """Selected keys can be cleared without dropping others."""
    clear_context()
    bind_context(template_id="rent", firing_id=7)

    clear_context("firing_id")

    assert get_context() == {"template_id": "rent"}
    clear_context()


def test_json_formatter_includes_context() -> None:
    """JSON lines carry bound context fields."""
    with log_context({"template_id": "rent"}):
        line = JsonFormatter().format(_record())

    payload = json.loads(line)
    assert payload["message"] == "Firing started"
    assert payload["template_id"] == "rent"
    assert payload["level"] == "INFO"


def test_plain_formatter_appends_sorted_context() -> None:
    """Plain lines end with key=value pairs."""
    with log_context({"template_id": "rent", "firing_id": "abc"}):
        line = PlainFormatter().format(_record())

    assert line.endswith("Firing started firing_id=abc template_id=rent")


def test_configure_logging_replaces_handlers() -> None:
    """Repeated configuration keeps a single root handler."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(level="debug")
        configure_logging(level="INFO", json_output=True)

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.INFO
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
