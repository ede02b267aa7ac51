from typing import Any, Dict, List, Optional

import pytest

from ikpa_backend.config import TracingSettings
from ikpa_backend.modules.observability.tracing import propagation
from ikpa_backend.modules.observability.tracing.backend_client import (
    RemoteSpan,
    RemoteTrace,
    TracingBackendClient,
)
from ikpa_backend.modules.observability.tracing.tracer import TracingService, set_tracer


class FakeRemoteSpan(RemoteSpan):
    def __init__(self, name, type, input=None, metadata=None, fail_on_end=False, id=None):
        self.id = id
        self.name = name
        self.type = type
        self.input = dict(input or {})
        self.metadata = dict(metadata or {})
        self.children: List["FakeRemoteSpan"] = []
        self.end_calls: List[Dict[str, Any]] = []
        self.fail_on_end = fail_on_end

    def span(self, name, type, input=None, metadata=None, id=None):
        child = FakeRemoteSpan(name, type, input, metadata, id=id)
        self.children.append(child)
        return child

    def end(self, output=None, metadata=None, usage=None, total_estimated_cost=None):
        if self.fail_on_end:
            raise RuntimeError("span end rejected")
        self.end_calls.append(
            {
                "output": output,
                "metadata": metadata,
                "usage": usage,
                "total_estimated_cost": total_estimated_cost,
            }
        )


class FakeRemoteTrace(RemoteTrace):
    def __init__(self, name, input=None, metadata=None, tags=None, fail_span_names=(), id=None):
        self.id = id
        self.name = name
        self.input = dict(input or {})
        self.metadata = dict(metadata or {})
        self.tags = tags
        self.spans: List[FakeRemoteSpan] = []
        self.end_calls: List[Dict[str, Any]] = []
        self.fail_span_names = set(fail_span_names)

    def span(self, name, type, input=None, metadata=None, id=None):
        if name in self.fail_span_names:
            raise RuntimeError(f"span {name} rejected")
        span = FakeRemoteSpan(name, type, input, metadata, id=id)
        self.spans.append(span)
        return span

    def end(self, output=None):
        self.end_calls.append({"output": output})


class FakeBackendClient(TracingBackendClient):
    """In-memory backend that records every call."""

    def __init__(self):
        self.traces: List[FakeRemoteTrace] = []
        self.feedback: List[Dict[str, Any]] = []
        self.span_scores: List[Dict[str, Any]] = []
        self.flush_calls = 0
        # Each entry is consumed by one flush call: an exception to raise or None
        self.flush_outcomes: List[Optional[BaseException]] = []
        self.fail_trace = False
        self.fail_span_names: set = set()
        self.fail_feedback = False
        self.shutdown_called = False

    def trace(self, name, input=None, metadata=None, tags=None, id=None):
        if self.fail_trace:
            raise RuntimeError("collector unavailable")
        trace = FakeRemoteTrace(name, input, metadata, tags, self.fail_span_names, id=id)
        self.traces.append(trace)
        return trace

    async def flush(self):
        self.flush_calls += 1
        if self.flush_outcomes:
            outcome = self.flush_outcomes.pop(0)
            if outcome is not None:
                raise outcome

    def log_feedback_score(self, **score):
        if self.fail_feedback:
            raise RuntimeError("feedback rejected")
        self.feedback.append(score)

    def log_span_score(self, **score):
        if self.fail_feedback:
            raise RuntimeError("score rejected")
        self.span_scores.append(score)

    async def shutdown(self):
        self.shutdown_called = True


class RecordingSleep:
    """Async sleep replacement that records the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings():
    return TracingSettings(
        api_key="test-key",
        workspace_name="test-workspace",
        project_name="ikpa-test",
        environment="test",
    )


@pytest.fixture
def backend():
    return FakeBackendClient()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def tracer(settings, backend, sleep):
    service = TracingService(
        settings=settings,
        client_factory=lambda _: backend,
        rng=lambda: 0.0,
        sleep=sleep,
    )
    assert service.initialize()
    return service


@pytest.fixture(autouse=True)
def reset_tracing_state():
    set_tracer(None)
    propagation._current_context.set(None)
    yield
    propagation._current_context.set(None)
    set_tracer(None)
