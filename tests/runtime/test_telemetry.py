import logging
import time

import pytest

from sona.runtime.memory.telemetry import (
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
)


def test_span_records_duration_and_success():
    client = RecordingTelemetryClient()
    with client.span("memory.test", attributes={"k": 3}) as span:
        span.set_attribute("matches", 2)

    attrs = client.named("memory.test")[0]
    assert client.count("memory.test") == 1
    assert attrs["success"] is True
    assert attrs["k"] == 3
    assert attrs["matches"] == 2
    assert attrs["duration_ms"] >= 0.0
    assert client.average_ms("memory.test") == pytest.approx(attrs["duration_ms"])


def test_span_marks_failure_and_propagates():
    client = RecordingTelemetryClient()
    with pytest.raises(ValueError):
        with client.span("memory.fail"):
            raise ValueError("bad input")

    assert client.named("memory.fail")[0]["success"] is False


def test_span_over_budget_logs_warning(caplog):
    client = RecordingTelemetryClient()
    with caplog.at_level(logging.WARNING, logger="sona.runtime.memory.telemetry"):
        with client.span("memory.slow", budget_ms=0.0):
            time.sleep(0.002)

    assert client.named("memory.slow")[0]["over_budget"] is True
    assert "exceeded latency budget" in caplog.text


def test_noop_and_logging_clients_accept_spans(caplog):
    with NoOpTelemetryClient().span("memory.noop"):
        pass
    with caplog.at_level(logging.DEBUG, logger="sona.runtime.memory.telemetry"):
        with LoggingTelemetryClient().span("memory.logged"):
            pass
    assert "memory.logged" in caplog.text
