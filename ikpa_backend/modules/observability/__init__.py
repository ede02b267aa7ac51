"""Observability module for the IKPA backend.

Provides tracing of AI agent runs and LLM calls:
- Traces and spans shipped to an external collector
- Context propagation across async call chains and service boundaries
- Rule-based sampling and retried, time-bounded flushing
- Structured JSON logging with trace correlation

Components:
    - logging: Structured logger with trace correlation
    - tracing: Tracing service, header codec, sampler, flush controller
    - dashboard: Operator API endpoints
"""

from .logging.structured_logger import StructuredLogger, get_logger
from .tracing.tracer import TracingService, get_tracer, set_tracer
from .tracing.trace_decorators import traced

__all__ = [
    "StructuredLogger",
    "get_logger",
    "TracingService",
    "get_tracer",
    "set_tracer",
    "traced",
]
