"""
Unit tests for the telemetry service.
"""

import json
import logging
import sys
from contextlib import nullcontext
from unittest.mock import MagicMock, patch

import pytest

from sessionstores.telemetry import (
    JSONFormatter,
    TelemetryService,
    backend_span,
    get_telemetry_service,
    initialize_telemetry,
    record_metric,
    span,
)


def make_record(**kwargs) -> logging.LogRecord:
    record = logging.LogRecord(
        name="sessionstores.session.store",
        level=logging.WARNING,
        pathname=__file__,
        lineno=42,
        msg="Session identifier collision, regenerating",
        args=(),
        exc_info=kwargs.pop("exc_info", None),
    )
    for key, value in kwargs.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSON log formatting."""

    def test_basic_fields(self):
        output = json.loads(JSONFormatter().format(make_record()))

        assert output["level"] == "WARNING"
        assert output["message"] == "Session identifier collision, regenerating"
        assert output["logger"] == "sessionstores.session.store"
        assert output["line"] == 42
        assert output["timestamp"].endswith("Z")

    def test_timestamp_is_record_creation_time(self):
        record = make_record()
        record.created = 1705314600.25

        output = json.loads(JSONFormatter().format(record))

        assert output["timestamp"] == "2024-01-15T10:30:00.250000Z"

    def test_extra_data_is_merged(self):
        record = make_record(extra_data={"backend": "sql", "attempt": 2})

        output = json.loads(JSONFormatter().format(record))

        assert output["backend"] == "sql"
        assert output["attempt"] == 2

    def test_exception_is_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record(exc_info=sys.exc_info())

        output = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in output["exception"]


@pytest.mark.usefixtures("restore_root_logger")
class TestTelemetryService:
    """Tests for TelemetryService setup and helpers."""

    def test_configures_root_logger(self):
        settings = MagicMock(log_level="DEBUG", otel_endpoint=None)

        TelemetryService(settings)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_defaults_without_settings(self):
        service = TelemetryService()

        assert service.log_level == "INFO"
        assert service.tracer is None
        assert logging.getLogger().level == logging.INFO

    def test_tracing_disabled_without_endpoint(self):
        service = TelemetryService(MagicMock(log_level="INFO", otel_endpoint=None))

        assert service.tracer is None
        assert isinstance(service.span("test"), nullcontext)

    def test_span_with_tracer(self):
        service = TelemetryService(MagicMock(log_level="INFO", otel_endpoint=None))
        service.tracer = MagicMock()

        service.span("session_store.sweep", {"sweeper.name": "sql-sweeper"})

        service.tracer.start_as_current_span.assert_called_once_with(
            "session_store.sweep", attributes={"sweeper.name": "sql-sweeper"}
        )

    def test_record_metric(self):
        service = TelemetryService()

        with patch("sessionstores.telemetry.service.logger") as mock_logger:
            service.record_metric("session_sweep_duration_ms", 1.5, tags={"sweeper": "sql-sweeper"})

        extra = mock_logger.debug.call_args.kwargs["extra"]["extra_data"]
        assert extra == {
            "metric_name": "session_sweep_duration_ms",
            "metric_value": 1.5,
            "tags": {"sweeper": "sql-sweeper"},
        }


@pytest.mark.usefixtures("restore_root_logger")
class TestGlobalTelemetry:
    """Tests for the module-level telemetry helpers."""

    def test_not_initialized(self):
        assert get_telemetry_service() is None
        assert isinstance(span("session_store.sweep"), nullcontext)
        assert isinstance(backend_span("sql", "load"), nullcontext)
        record_metric("session_sweep_duration_ms", 1.0)

    def test_initialize(self):
        service = initialize_telemetry(MagicMock(log_level="INFO", otel_endpoint=None))

        assert get_telemetry_service() is service

    def test_backend_span_attributes(self):
        service = initialize_telemetry(MagicMock(log_level="INFO", otel_endpoint=None))
        service.tracer = MagicMock()

        backend_span("redis", "load", {"session.id.prefix": "abcd"})

        service.tracer.start_as_current_span.assert_called_once_with(
            "session_store.redis.load",
            attributes={
                "db.system": "redis",
                "db.operation": "load",
                "session.id.prefix": "abcd",
            },
        )

    def test_record_metric_uses_service(self):
        service = initialize_telemetry(MagicMock(log_level="INFO", otel_endpoint=None))

        with patch.object(service, "record_metric") as record:
            record_metric("session_sweep_duration_ms", 2.0, {"success": "true"})

        record.assert_called_once_with("session_sweep_duration_ms", 2.0, {"success": "true"})

    def test_noop_span_does_not_swallow_errors(self):
        with pytest.raises(ValueError):
            with backend_span("sql", "load"):
                raise ValueError("propagates")
