"""Tests for structured logging configuration and context binding."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest

from packages.backoffice_shared.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    log_context,
)
from packages.backoffice_shared.logging.config import (
    ContextFilter,
    JsonFormatter,
    PlainFormatter,
)


@pytest.fixture(autouse=True)
def _isolated_context() -> Iterator[None]:
    clear_context()
    yield
    clear_context()


def _record(message: str = "committed") -> logging.LogRecord:
    record = logging.LogRecord(
        name="entity_audit",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    ContextFilter().filter(record)
    return record


def test_bind_context_skips_none_and_stringifies() -> None:
    """Bound values should be strings and ``None`` should be dropped."""
    bind_context(entity_id="ACC-001", actor_id=None, attempt=2)

    assert get_context() == {"entity_id": "ACC-001", "attempt": "2"}


def test_log_context_restores_previous_values() -> None:
    """Temporarily bound fields should disappear after the block."""
    bind_context(service="backoffice")
    with log_context({"entity_type": "Account"}):
        assert get_context() == {"service": "backoffice", "entity_type": "Account"}

    assert get_context() == {"service": "backoffice"}


def test_clear_context_removes_selected_keys() -> None:
    """Only named keys should be removed when keys are given."""
    bind_context(a="1", b="2")
    clear_context("a")

    assert get_context() == {"b": "2"}


def test_json_formatter_includes_bound_context() -> None:
    """JSON lines should carry core fields plus the bound context."""
    with log_context({"entity_id": "ACC-001"}):
        record = _record()

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "committed"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "entity_audit"
    assert payload["entity_id"] == "ACC-001"


def test_plain_formatter_appends_sorted_context() -> None:
    """Plain lines should end with sorted ``key=value`` pairs."""
    with log_context({"b": "2", "a": "1"}):
        record = _record()

    assert PlainFormatter().format(record).endswith("committed a=1 b=2")


def test_configure_logging_replaces_root_handlers() -> None:
    """Repeated configuration should leave a single stdout handler."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    try:
        configure_logging(level="debug", json_output=False, service="backoffice")
        configure_logging(level="info", service="backoffice", environment="test")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.INFO
        assert get_context()["environment"] == "test"
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
