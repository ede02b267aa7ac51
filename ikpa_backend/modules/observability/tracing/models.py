"""Value types for traces, spans and propagated trace context."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from .backend_client import RemoteSpan, RemoteTrace


class SpanType(str, Enum):
    """Kinds of work a span can represent."""

    LLM = "llm"
    TOOL = "tool"
    RETRIEVAL = "retrieval"
    GENERAL = "general"


class LLMProvider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    COHERE = "cohere"
    GOOGLE = "google"
    CUSTOM = "custom"


def new_id() -> str:
    """Generate a fresh UUID4 identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(started_at: datetime) -> int:
    return int((utc_now() - started_at).total_seconds() * 1000)


@dataclass(frozen=True)
class TokenUsage:
    """Token consumption of a single LLM call."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def to_metadata(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }

    def to_usage(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class Trace:
    """The root unit of an observed logical operation.

    Attributes:
        remote: Backend handle the trace was created through
        trace_id: Fresh UUID for every created trace
        trace_name: Human-readable trace name
        started_at: Creation time (UTC), used for duration
        metadata: Metadata sent to the backend on creation
        tags: Tags for filtering in the collector
    """

    remote: "RemoteTrace" = field(repr=False, compare=False)
    trace_id: str
    trace_name: str
    started_at: datetime = field(default_factory=utc_now)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    tags: Tuple[str, ...] = ()

    def duration_ms(self) -> int:
        return _elapsed_ms(self.started_at)


@dataclass(frozen=True)
class Span:
    """A sub-unit of work within a trace, optionally nested under a parent span.

    Attributes:
        remote: Backend handle the span was created through
        span_id: Unique, immutable span identifier
        trace_id: Inherited from the trace or parent span
        parent_span_id: Set only for nested spans
        type: Span type
        name: Span name
        started_at: Creation time (UTC), used for duration
        metadata: Metadata sent to the backend on creation
    """

    remote: "RemoteSpan" = field(repr=False, compare=False)
    span_id: str
    trace_id: str
    type: SpanType
    name: str
    parent_span_id: Optional[str] = None
    started_at: datetime = field(default_factory=utc_now)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def duration_ms(self) -> int:
        return _elapsed_ms(self.started_at)


@dataclass(frozen=True)
class TraceLink:
    """Cross-service link from a local trace to a remote one."""

    remote_trace_id: str
    remote_span_id: Optional[str] = None
    relationship: str = "linked"
    remote_service: Optional[str] = None

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "remoteTraceId": self.remote_trace_id,
            "remoteSpanId": self.remote_span_id,
            "relationship": self.relationship,
            "remoteService": self.remote_service,
        }


@dataclass(frozen=True)
class TraceContext:
    """The unit of context propagation.

    Immutable once installed in a propagation scope; nested scopes install
    a different instance instead of mutating this one.
    """

    trace_id: str
    trace_name: str
    span_id: Optional[str] = None
    baggage: Optional[Mapping[str, str]] = None
    is_remote: bool = False
    link: Optional[TraceLink] = None

    def with_span(self, span_id: Optional[str]) -> "TraceContext":
        """Return a copy pointing at a different current span."""
        return replace(self, span_id=span_id)

    def with_link(self, link: TraceLink) -> "TraceContext":
        return replace(self, link=link)


@dataclass(frozen=True)
class SpanDefinition:
    """One entry of a batch span creation."""

    name: str
    type: SpanType
    input: Mapping[str, Any] = field(default_factory=dict)
    metadata: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class SpanCompletion:
    """One entry of a batch span ending."""

    span: Optional[Span]
    output: Mapping[str, Any] = field(default_factory=dict)
    metadata: Optional[Mapping[str, Any]] = None
