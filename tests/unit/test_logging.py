"""Unit tests for structured logging."""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Iterator

import pytest

from license_fulfillment.logging import JsonFormatter, configure_logging


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("license_fulfillment.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_record_as_json() -> None:
    payload = json.loads(JsonFormatter().format(_record(task="GetCustomer", attempts=2)))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "license_fulfillment.test"
    assert payload["message"] == "hello world"
    assert payload["extra"] == {"task": "GetCustomer", "attempts": 2}
    assert "thread" in payload


def test_masks_credential_like_fields() -> None:
    payload = json.loads(
        JsonFormatter().format(
            _record(authorization="Bearer x", headers={"Authorization": "Bearer y", "Accept": "json"})
        )
    )

    assert payload["extra"]["authorization"] == "***"
    assert payload["extra"]["headers"] == {"Authorization": "***", "Accept": "json"}


def test_configure_logging_replaces_handlers(restore_root_logger: None) -> None:
    stream = io.StringIO()
    configure_logging("debug", stream=io.StringIO())
    configure_logging("info", stream=stream)

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.INFO

    logging.getLogger("license_fulfillment").info("Workflow started", extra={"workflow": "W"})
    line = json.loads(stream.getvalue().strip())
    assert line["extra"] == {"workflow": "W"}
