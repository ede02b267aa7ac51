"""Decorators for automatic tracing of functions."""

import functools
import inspect
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .models import Span, SpanType, TraceContext
from .propagation import get_context, run_with_context, run_with_context_sync
from .tracer import TracingService, get_tracer


def _start(
    tracer: TracingService, span_name: str, span_type: SpanType, attrs: Dict[str, Any]
) -> Tuple[Optional[Span], Optional[TraceContext]]:
    ctx = get_context()
    if ctx is None:
        return None, None

    parent = tracer.get_open_span(ctx.span_id)
    if parent is not None:
        span = tracer.create_nested_span(parent, span_name, span_type, {}, attrs)
    else:
        trace = tracer.get_trace(ctx.trace_id)
        if trace is None:
            return None, None
        span = tracer.create_span(trace, span_name, span_type, {}, attrs)

    if span is None:
        return None, None
    return span, ctx.with_span(span.span_id)


def _error_output(e: Exception) -> Dict[str, Any]:
    return {"status": "error", "error.type": type(e).__name__, "error.message": str(e)}


def traced(
    name: Optional[str] = None,
    span_type: Union[SpanType, str] = SpanType.GENERAL,
    attributes: Optional[dict] = None,
    tracer: Optional[TracingService] = None,
):
    """Decorator to automatically trace function execution.

    A span is only recorded when the call happens inside a propagated trace
    context; otherwise the function just runs.

    Args:
        name: Optional span name (defaults to function name)
        span_type: Type of the created span
        attributes: Optional metadata to attach to the span
        tracer: Tracing service (default: the global tracer)

    Example:
        @traced("score_transactions", span_type=SpanType.TOOL)
        async def score_transactions(user_id: str):
            return result
    """
    span_type = SpanType(span_type)

    def decorator(fn: Callable) -> Callable:
        span_name = name or fn.__name__

        def span_attrs() -> Dict[str, Any]:
            attrs = dict(attributes) if attributes else {}
            attrs["function"] = fn.__qualname__
            return attrs

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs) -> Any:
                service = tracer or get_tracer()
                span, child_ctx = _start(service, span_name, span_type, span_attrs())
                if span is None:
                    return await fn(*args, **kwargs)

                try:
                    result = await run_with_context(child_ctx, fn, *args, **kwargs)
                except Exception as e:
                    service.end_span(span, _error_output(e))
                    raise
                service.end_span(span, {"status": "ok"})
                return result

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args, **kwargs) -> Any:
            service = tracer or get_tracer()
            span, child_ctx = _start(service, span_name, span_type, span_attrs())
            if span is None:
                return fn(*args, **kwargs)

            try:
                result = run_with_context_sync(child_ctx, fn, *args, **kwargs)
            except Exception as e:
                service.end_span(span, _error_output(e))
                raise
            service.end_span(span, {"status": "ok"})
            return result

        return sync_wrapper

    return decorator

