import pytest

from ikpa_backend.modules.observability.tracing.models import SpanType, TraceContext
from ikpa_backend.modules.observability.tracing.propagation import get_context, run_with_context, run_with_context_sync
from ikpa_backend.modules.observability.tracing.trace_decorators import traced


@pytest.mark.asyncio
async def test_async_function_gets_span_in_trace_context(tracer, backend):
    @traced("categorize", span_type=SpanType.TOOL, tracer=tracer)
    async def categorize(amount):
        return get_context().span_id, amount * 2

    async def body(trace):
        return await categorize(21)

    span_id, result = await tracer.with_trace("budget", body)

    remote_span = backend.traces[0].spans[0]
    assert result == 42
    assert remote_span.name == "categorize"
    assert remote_span.type == "tool"
    assert remote_span.metadata["spanId"] == span_id
    assert remote_span.end_calls[0]["output"] == {"status": "ok"}


@pytest.mark.asyncio
async def test_nested_decorated_calls_nest_spans(tracer, backend):
    @traced(tracer=tracer)
    async def inner():
        return "done"

    @traced(tracer=tracer)
    async def outer():
        return await inner()

    async def body(trace):
        return await outer()

    assert await tracer.with_trace("t", body) == "done"

    outer_span = backend.traces[0].spans[0]
    assert outer_span.name == "outer"
    assert [c.name for c in outer_span.children] == ["inner"]
    assert outer_span.children[0].metadata["parentSpanId"] == outer_span.metadata["spanId"]


@pytest.mark.asyncio
async def test_exceptions_are_reraised_and_recorded(tracer, backend):
    @traced(tracer=tracer)
    async def explode():
        raise ValueError("bad input")

    async def body(trace):
        await explode()

    with pytest.raises(ValueError, match="bad input"):
        await tracer.with_trace("t", body)

    output = backend.traces[0].spans[0].end_calls[0]["output"]
    assert output["status"] == "error"
    assert output["error.type"] == "ValueError"


def test_sync_function_traced(tracer, backend):
    trace = tracer.create_trace("t")

    @traced("add", tracer=tracer)
    def add(a, b):
        return a + b

    ctx = TraceContext(trace_id=trace.trace_id, trace_name=trace.trace_name)

    assert run_with_context_sync(ctx, add, 1, 2) == 3
    assert backend.traces[0].spans[0].name == "add"


@pytest.mark.asyncio
async def test_runs_untraced_without_context(tracer, backend):
    @traced(tracer=tracer)
    async def work():
        return get_context()

    assert await work() is None
    assert backend.traces == []


@pytest.mark.asyncio
async def test_unknown_trace_in_context_runs_untraced(tracer, backend):
    @traced(tracer=tracer)
    async def work():
        return "ok"

    result = await run_with_context(TraceContext(trace_id="remote", trace_name="r", is_remote=True), work)

    assert result == "ok"
    assert backend.traces == []
