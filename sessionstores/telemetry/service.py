"""
Structured logging and optional tracing for session stores.

Log records go to stdout as one JSON object per line. When an OpenTelemetry
collector endpoint is configured, backend calls and sweeps are wrapped in
spans; otherwise the span helpers return a no-op context manager. Metrics
are emitted as debug log entries.
"""

import json
import logging
import sys
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, ContextManager, Dict, Optional

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """
    Render a log record as a single JSON object.

    The object holds the record's creation time (UTC, ISO 8601 with a Z
    suffix), level, logger name, message and source location. Keys passed
    with ``extra={"extra_data": {...}}`` are merged in at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        entry.update(getattr(record, "extra_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TelemetryService:
    """
    Process-wide logging and tracing setup.

    Reads log_level, otel_endpoint and otel_service_name from the given
    settings object; any of them may be missing.
    """

    def __init__(self, settings: Optional[Any] = None):
        self.settings = settings
        self.log_level = (getattr(settings, "log_level", None) or "INFO").upper()
        self._configure_logging()

        self.tracer = None
        endpoint = getattr(settings, "otel_endpoint", None)
        if endpoint:
            self.tracer = self._configure_tracing(
                endpoint, getattr(settings, "otel_service_name", "sessionstores")
            )
        else:
            logger.debug("Tracing disabled, no OpenTelemetry endpoint configured")

    def _configure_logging(self) -> None:
        level = getattr(logging, self.log_level, logging.INFO)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())

        root = logging.getLogger()
        # Replace existing handlers so entries are not written twice
        for existing in root.handlers[:]:
            root.removeHandler(existing)
        root.addHandler(handler)
        root.setLevel(level)

        logger.info("Structured logging configured", extra={
            "extra_data": {"log_level": self.log_level}
        })

    def _configure_tracing(self, endpoint: str, service_name: str) -> Optional[Any]:
        """Install an OTLP exporting tracer provider. Returns None on failure."""
        try:
            from opentelemetry import trace
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import SERVICE_NAME, Resource
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
        except ImportError as e:
            logger.warning("OpenTelemetry packages not installed, tracing disabled", extra={
                "extra_data": {"error": str(e)}
            })
            return None

        try:
            provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
            trace.set_tracer_provider(provider)
        except Exception as e:
            logger.error("Failed to configure OpenTelemetry tracing", extra={
                "extra_data": {"otel_endpoint": endpoint, "error": str(e)}
            })
            return None

        logger.info("OpenTelemetry tracing configured", extra={
            "extra_data": {"otel_endpoint": endpoint, "service_name": service_name}
        })
        return trace.get_tracer(service_name)

    def span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> ContextManager:
        """Start a span as the current span, or do nothing without a tracer."""
        if self.tracer is None:
            return nullcontext()
        return self.tracer.start_as_current_span(name, attributes=attributes)

    def record_metric(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        logger.debug(f"Metric: {name}={value}", extra={
            "extra_data": {"metric_name": name, "metric_value": value, "tags": tags or {}}
        })


_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """The global telemetry service, or None if not initialized."""
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """Create the global telemetry service, replacing any previous one."""
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service


def reset_telemetry() -> None:
    """Forget the global telemetry service. Used by tests."""
    global _telemetry_service
    _telemetry_service = None


def span(name: str, attributes: Optional[Dict[str, Any]] = None) -> ContextManager:
    """Span through the global telemetry service; a no-op when there is none."""
    service = _telemetry_service
    if service is None:
        return nullcontext()
    return service.span(name, attributes)


def backend_span(
    backend: str,
    operation: str,
    attributes: Optional[Dict[str, Any]] = None,
) -> ContextManager:
    """
    Span around one call into a storage backend.

    Named ``session_store.<backend>.<operation>`` and tagged with the
    db.system and db.operation attributes plus any given ones.
    """
    span_attributes: Dict[str, Any] = {"db.system": backend, "db.operation": operation}
    span_attributes.update(attributes or {})
    return span(f"session_store.{backend}.{operation}", span_attributes)


def record_metric(name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
    """Record a metric through the global telemetry service, if any."""
    service = _telemetry_service
    if service is not None:
        service.record_metric(name, value, tags)
