"""Tracing exception hierarchy.

Only ``FlushException`` is ever raised to callers of the tracing service,
and only when they opt in with ``throw_on_error=True``. The others are
raised by internal helpers and turned into ``None``/``False``/no-op at the
service boundary.
"""

from typing import Any, Dict, Optional


class TracingError(Exception):
    """Base exception for all tracing errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.details = details or {}
        super().__init__(message)


class TracingConfigurationError(TracingError):
    """Required collector configuration is missing or invalid."""

    def __init__(self, missing_key: str):
        self.missing_key = missing_key
        super().__init__(f"Tracing configuration error: Missing {missing_key}", {"missingKey": missing_key})


class TraceOperationError(TracingError):
    """Creating or ending a trace failed in the backend."""

    def __init__(self, operation: str, trace_name: str, details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.trace_name = trace_name
        super().__init__(
            f"Failed to {operation} trace: {trace_name}",
            {"traceName": trace_name, "operation": operation, **(details or {})},
        )


class SpanOperationError(TracingError):
    """Creating or ending a span failed in the backend."""

    def __init__(
        self,
        operation: str,
        span_name: str,
        span_type: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation
        self.span_name = span_name
        self.span_type = span_type
        super().__init__(
            f"Failed to {operation} span: {span_name} (type: {span_type})",
            {"spanName": span_name, "spanType": span_type, "operation": operation, **(details or {})},
        )


class FeedbackError(TracingError):
    """Recording feedback on a trace or a score on a span failed."""

    def __init__(self, target_id: str, name: str, details: Optional[Dict[str, Any]] = None):
        self.target_id = target_id
        self.name = name
        super().__init__(
            f"Failed to record score '{name}' for {target_id}",
            {"targetId": target_id, "name": name, **(details or {})},
        )


class FlushException(TracingError):
    """Flushing buffered telemetry failed after every retry attempt."""

    def __init__(self, attempts: int, error: Optional[str] = None):
        self.attempts = attempts
        self.error = error
        super().__init__(
            "Failed to flush traces",
            {"attempts": attempts, "error": error},
        )
