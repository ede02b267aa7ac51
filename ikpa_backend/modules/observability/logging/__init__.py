"""Structured logging module with trace correlation.

Provides JSON-formatted logs whose trace_id/span_id are filled from the
currently propagated trace context.

Example:
    from ikpa_backend.modules.observability.logging import get_logger

    logger = get_logger("tracer")
    logger.info("Flush completed", attempts=2)

    # Output: {"timestamp": "2026-02-01T06:12:00Z", "level": "INFO",
    #          "service": "ikpa", "component": "tracer",
    #          "message": "Flush completed", "trace_id": "abc-123", "attempts": 2}
"""

from .structured_logger import LogEntry, LogLevel, StructuredLogger, get_logger

__all__ = [
    "LogEntry",
    "LogLevel",
    "StructuredLogger",
    "get_logger",
]
