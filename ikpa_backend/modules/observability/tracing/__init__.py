"""Distributed tracing for AI agent runs.

Records traces (one per logical operation, e.g. an agent's cognitive chain)
made of typed spans (LLM calls, tool executions, retrievals), propagates the
trace context across awaits and HTTP boundaries, and flushes buffered
telemetry to the collector with retry.

Components:
    - TracingService: Best-effort façade used by business code
    - Sampler / SamplingRule: First-match-wins sampling
    - FlushController / RetryPolicy: Retried, time-bounded flush
    - header_codec: x-trace-id / traceparent / baggage headers
    - Backend clients: Buffered, console and HTTP collectors

Example:
    from ikpa_backend.modules.observability.tracing import get_tracer, traced

    tracer = get_tracer()

    @traced("categorize_expenses", span_type="tool")
    async def categorize_expenses(user_id: str):
        ...

    await tracer.with_trace("budget_review", lambda trace: categorize_expenses("u-1"))
"""

from .backend_client import (
    BufferedBackendClient,
    ConsoleBackendClient,
    HTTPBackendClient,
    RemoteSpan,
    RemoteTrace,
    TracingBackendClient,
    create_backend_client,
)
from .exceptions import (
    FeedbackError,
    FlushException,
    SpanOperationError,
    TraceOperationError,
    TracingConfigurationError,
    TracingError,
)
from .flush_controller import FlushController, FlushOutcome, RetryPolicy, calculate_exponential_backoff
from .header_codec import extract_context_from_headers, inject_context_to_headers
from .middleware import TraceContextMiddleware
from .models import (
    LLMProvider,
    Span,
    SpanCompletion,
    SpanDefinition,
    SpanType,
    TokenUsage,
    Trace,
    TraceContext,
    TraceLink,
)
from .propagation import get_context, link_to_remote_trace, run_with_context, run_with_context_sync
from .sampler import Sampler, SamplingRule
from .trace_decorators import traced
from .tracer import TracingService, get_tracer, set_tracer

__all__ = [
    "TracingService",
    "get_tracer",
    "set_tracer",
    "traced",
    "TraceContextMiddleware",
    "Trace",
    "Span",
    "SpanType",
    "LLMProvider",
    "TokenUsage",
    "TraceContext",
    "TraceLink",
    "SpanDefinition",
    "SpanCompletion",
    "Sampler",
    "SamplingRule",
    "FlushController",
    "FlushOutcome",
    "RetryPolicy",
    "calculate_exponential_backoff",
    "get_context",
    "run_with_context",
    "run_with_context_sync",
    "link_to_remote_trace",
    "extract_context_from_headers",
    "inject_context_to_headers",
    "TracingBackendClient",
    "RemoteTrace",
    "RemoteSpan",
    "BufferedBackendClient",
    "ConsoleBackendClient",
    "HTTPBackendClient",
    "create_backend_client",
    "TracingError",
    "TracingConfigurationError",
    "TraceOperationError",
    "SpanOperationError",
    "FeedbackError",
    "FlushException",
]
