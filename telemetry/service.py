"""
Telemetry service for structured logging and observability.

Logs are emitted as one JSON object per line with the request id of the
HTTP request being served. Metrics are recorded as structured debug log
lines (metric_name / metric_value / tags) for the log pipeline to pick up,
and OpenTelemetry spans are created only when a collector endpoint is
configured.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from middleware.request_id import request_id_var


class JSONFormatter(logging.Formatter):
    """
    Log formatter that renders each record as a single JSON object.

    Every entry has timestamp (UTC, ISO 8601), level, message, logger and
    request_id. Fields passed as ``extra={"extra_data": {...}}`` are merged
    into the top level of the entry.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class TelemetryService:
    """
    Centralized logging, metrics and tracing for the tracking backend.

    Args:
        settings: Application settings (log_level, otel_endpoint,
            otel_service_name). Defaults apply when omitted.
        configure_logging: Install the JSON handler on the root logger.
            Components constructed outside the application (tests, scripts)
            use an instance with this turned off.
    """

    def __init__(self, settings: Optional[Any] = None, configure_logging: bool = True):
        self.settings = settings
        self.tracer = None
        self._logger = logging.getLogger("telemetry")
        if configure_logging:
            self._setup_logging()
            self._setup_tracing()

    def _setup_logging(self) -> None:
        """Install a stdout handler with JSONFormatter on the root logger."""
        log_level_str = getattr(self.settings, "log_level", None) or "INFO"
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Remove existing handlers to avoid duplicate logs
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        # uvicorn's access log duplicates RequestIDMiddleware's output
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

        self._logger.info("Telemetry service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        """Configure an OTLP span exporter when otel_endpoint is set."""
        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME

            service_name = getattr(self.settings, "otel_service_name", "courier-tracking")

            provider = TracerProvider(resource=Resource(attributes={
                SERVICE_NAME: service_name
            }))
            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint))
            )
            trace.set_tracer_provider(provider)

            self.tracer = trace.get_tracer(service_name)

            self._logger.info("OpenTelemetry tracing configured", extra={
                "extra_data": {
                    "otel_endpoint": otel_endpoint,
                    "service_name": service_name
                }
            })
        except Exception as e:
            self._logger.error(
                "Failed to configure OpenTelemetry tracing",
                extra={"extra_data": {"error": str(e)}}
            )

    def log_audit_event(
        self,
        event_type: str,
        user_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an audit event for a state-changing operation.

        Args:
            event_type: Type of audit event (e.g., "tracking_toggle")
            user_id: ID of the actor performing the action
            resource_type: Type of resource being acted upon (e.g., "shipment")
            resource_id: ID of the specific resource
            action: Action being performed (e.g., "enable", "disable")
            details: Additional details about the event
        """
        audit_data = {
            "audit_event": True,
            "event_type": event_type,
            "user_id": user_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "action": action,
        }

        if details:
            audit_data["details"] = details

        self._logger.info(
            f"Audit: {event_type} - {action} on {resource_type}",
            extra={"extra_data": audit_data}
        )

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record a custom metric.

        Args:
            name: Name of the metric (e.g., "location_report_outcome")
            value: Metric value
            tags: Optional tags for metric dimensions
        """
        metric_data: Dict[str, Any] = {
            "metric_name": name,
            "metric_value": value,
        }

        if tags:
            metric_data["tags"] = tags

        self._logger.debug(
            f"Metric: {name}={value}",
            extra={"extra_data": metric_data}
        )

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Create an OpenTelemetry span.

        Args:
            name: Name of the span
            attributes: Optional attributes set on the span once entered

        Returns:
            A span context manager; a no-op one when tracing is disabled
        """
        if self.tracer:
            return _SpanContextManager(self.tracer.start_as_current_span(name), attributes or {})
        return _NoOpSpanContextManager()

    def create_external_service_span(
        self,
        service_name: str,
        operation: str,
        attributes: Optional[Dict[str, Any]] = None
    ):
        """
        Create a client span for a call to an external service.

        Args:
            service_name: External service (e.g., "geocoding", "elasticsearch")
            operation: Operation name (e.g., "geocode", "append")
            attributes: Optional additional attributes for the span

        Returns:
            A span context manager
        """
        span_attributes = {
            "service.name": service_name,
            "operation.name": operation,
            "span.kind": "client",
        }

        if attributes:
            span_attributes.update(attributes)

        return self.create_span(f"{service_name}.{operation}", span_attributes)


class _SpanContextManager:
    """Enters an OpenTelemetry span and sets attributes on it."""

    def __init__(self, span_context, attributes: Dict[str, Any]):
        self._span_context = span_context
        self._attributes = attributes
        self._span = None

    def __enter__(self):
        self._span = self._span_context.__enter__()
        if self._span is not None and hasattr(self._span, "set_attribute"):
            for key, value in self._attributes.items():
                if value is not None:
                    self._span.set_attribute(key, value)
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb):
        return self._span_context.__exit__(exc_type, exc_val, exc_tb)


class _NoOpSpanContextManager:
    """Stand-in span used when tracing is not configured."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass


# Global telemetry service instance
_telemetry_service: Optional[TelemetryService] = None


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """
    Initialize the global telemetry service.

    Args:
        settings: Application settings for configuration

    Returns:
        The initialized telemetry service
    """
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service


def resolve_telemetry(telemetry: Optional[TelemetryService] = None) -> TelemetryService:
    """
    Pick the telemetry service a component should use.

    Returns the explicit instance if given, else the global one, else a
    service that logs through the existing logging configuration.
    """
    if telemetry is not None:
        return telemetry
    return _telemetry_service or TelemetryService(configure_logging=False)


def get_request_id() -> str:
    """
    Get the current request ID from context.

    Returns:
        The current request ID, or empty string if not set
    """
    return request_id_var.get("")
