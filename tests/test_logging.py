from __future__ import annotations

import json
import logging

from opsdesk.shared.infrastructure.logging import CustomJsonFormatter


def _format(**extra) -> dict:
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="testing")
    record = logging.LogRecord("opsdesk.sla", logging.INFO, __file__, 1, "SLA paused", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


def test_adds_environment_timestamp_and_correlation_id() -> None:
    payload = _format(correlation_id="abc-123", entity_id="TASK-1")

    assert payload["message"] == "SLA paused"
    assert payload["environment"] == "testing"
    assert payload["correlation_id"] == "abc-123"
    assert payload["entity_id"] == "TASK-1"
    assert "timestamp" in payload


def test_redacts_secret_fields() -> None:
    payload = _format(api_key="sk-live", db_password="hunter2")

    assert payload["api_key"] == "***REDACTED***"
    assert payload["db_password"] == "***REDACTED***"
