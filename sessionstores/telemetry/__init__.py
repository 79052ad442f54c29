"""
Telemetry module for structured logging and observability.

This module provides:
- JSONFormatter for structured JSON log output
- TelemetryService for process-wide logging and tracing setup
- Module-level span and metric helpers that are no-ops until
  initialize_telemetry() is called
"""

from sessionstores.telemetry.service import (
    JSONFormatter,
    TelemetryService,
    backend_span,
    get_telemetry_service,
    initialize_telemetry,
    record_metric,
    reset_telemetry,
    span,
)

__all__ = [
    "JSONFormatter",
    "TelemetryService",
    "backend_span",
    "get_telemetry_service",
    "initialize_telemetry",
    "record_metric",
    "reset_telemetry",
    "span",
]
