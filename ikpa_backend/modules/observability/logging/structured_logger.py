"""Structured JSON logger with trace correlation for production observability."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    """Log severity levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogEntry(BaseModel):
    """Structured log entry model.

    Attributes:
        timestamp: ISO 8601 timestamp in UTC
        level: Log severity level
        service: Service name (default: ikpa)
        component: Component/module name (e.g., tracer, sampler, flush)
        message: Human-readable message
        trace_id: Trace ID for correlation with distributed traces
        span_id: Span ID for the specific operation
        extra: Additional key-value metadata
    """

    model_config = ConfigDict(use_enum_values=True)

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    level: LogLevel
    service: str = "ikpa"
    component: Optional[str] = None
    message: str
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize log entry to JSON string."""
        data = self.model_dump(exclude_none=True)
        # Merge extra fields into top-level
        extra = data.pop("extra", {})
        data.update(extra)
        return json.dumps(data, default=str)


def _json_output_default() -> bool:
    return os.getenv("STRUCTURED_LOG_JSON", "1").lower() not in ("0", "false", "no")


class StructuredLogger:
    """JSON structured logger with trace correlation.

    Outputs logs in JSON format for ingestion by log aggregation systems.
    When no trace_id/span_id is passed explicitly, the identifiers of the
    currently propagated trace context are used, so any log line written
    inside ``run_with_context`` is linked to its trace.

    Example:
        logger = StructuredLogger("tracer")
        logger.info("Trace created", trace_name="shark_auditor_cognitive_chain")

        # Output: {"timestamp": "2026-02-01T06:12:00Z", "level": "INFO",
        #          "service": "ikpa", "component": "tracer",
        #          "message": "Trace created", "trace_id": "abc-123",
        #          "trace_name": "shark_auditor_cognitive_chain"}
    """

    def __init__(
        self,
        component: Optional[str] = None,
        service: str = "ikpa",
        output_stream=None,
        json_output: Optional[bool] = None,
    ):
        """Initialize structured logger.

        Args:
            component: Component/module name for log entries
            service: Service name (default: ikpa)
            output_stream: Output stream (default: sys.stdout)
            json_output: Write JSON lines to the stream (default: STRUCTURED_LOG_JSON env, on)
        """
        self.component = component
        self.service = service
        self.output_stream = output_stream or sys.stdout
        self.json_output = _json_output_default() if json_output is None else json_output
        self._stdlib_logger = logging.getLogger(f"{service}.{component}" if component else service)

    def _log(
        self,
        level: LogLevel,
        message: str,
        trace_id: Optional[str] = None,
        span_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """Internal logging method.

        Args:
            level: Log severity level
            message: Log message
            trace_id: Trace ID for correlation (default: current context)
            span_id: Span ID (default: current context)
            **extra: Additional metadata
        """
        if trace_id is None:
            # Imported here: the tracing package itself logs through this module
            from ..tracing.propagation import get_context

            ctx = get_context()
            if ctx is not None:
                trace_id = ctx.trace_id
                span_id = span_id or ctx.span_id

        if self.json_output:
            entry = LogEntry(
                level=level,
                service=self.service,
                component=self.component,
                message=message,
                trace_id=trace_id,
                span_id=span_id,
                extra=extra,
            )
            self.output_stream.write(entry.to_json() + "\n")
            self.output_stream.flush()

        # Also log to stdlib logger for compatibility
        stdlib_level = getattr(logging, level.value)
        self._stdlib_logger.log(stdlib_level, message, extra=extra)

    def debug(
        self,
        message: str,
        trace_id: Optional[str] = None,
        span_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """Log debug message."""
        self._log(LogLevel.DEBUG, message, trace_id, span_id, **extra)

    def info(
        self,
        message: str,
        trace_id: Optional[str] = None,
        span_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """Log info message."""
        self._log(LogLevel.INFO, message, trace_id, span_id, **extra)

    def warning(
        self,
        message: str,
        trace_id: Optional[str] = None,
        span_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """Log warning message."""
        self._log(LogLevel.WARNING, message, trace_id, span_id, **extra)

    def error(
        self,
        message: str,
        trace_id: Optional[str] = None,
        span_id: Optional[str] = None,
        exc_info: Optional[BaseException] = None,
        **extra: Any,
    ) -> None:
        """Log error message with optional exception info."""
        if exc_info:
            extra["exception_type"] = type(exc_info).__name__
            extra["exception_message"] = str(exc_info)
        self._log(LogLevel.ERROR, message, trace_id, span_id, **extra)


# Singleton logger instances
_loggers: Dict[str, StructuredLogger] = {}


def get_logger(component: Optional[str] = None, service: str = "ikpa") -> StructuredLogger:
    """Get or create a structured logger instance.

    Args:
        component: Component name for the logger
        service: Service name (default: ikpa)

    Returns:
        StructuredLogger instance
    """
    key = f"{service}.{component}" if component else service
    if key not in _loggers:
        _loggers[key] = StructuredLogger(component=component, service=service)
    return _loggers[key]
