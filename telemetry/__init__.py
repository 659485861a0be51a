"""
Telemetry module for structured logging and observability.

This module provides:
- JSONFormatter for structured JSON log output
- TelemetryService for audit events, metrics and tracing spans
- Integration with OpenTelemetry when a collector endpoint is configured
"""

from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    initialize_telemetry,
    resolve_telemetry,
    get_request_id,
)

__all__ = [
    "JSONFormatter",
    "TelemetryService",
    "initialize_telemetry",
    "resolve_telemetry",
    "get_request_id",
]
