"""Tracing service: the public API business code uses to record traces and spans.

Every public method is best-effort. Failures inside the tracing layer are
logged and turned into ``None`` / ``False`` / no-op so that tracing can never
fail a business operation. The single exception is ``flush`` with
``throw_on_error=True``, which raises FlushException.

Example:
    tracer = get_tracer()

    async def audit(user_id: str):
        trace = tracer.create_agent_trace("shark_auditor", user_id, {"action": "audit"})
        span = tracer.create_llm_span(trace, "generate_framing", {"prompt": "..."},
                                      model="claude-sonnet-4", provider="anthropic")
        ...
        tracer.end_llm_span(span, {"response": text},
                            usage=TokenUsage(150, 200, 350))
        tracer.end_trace(trace, success=True, result={"reviewed": 5})
"""

import asyncio
import functools
import random
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar, Union

from pydantic import ValidationError

from ikpa_backend.config import TracingSettings
from ..logging.structured_logger import get_logger
from . import header_codec, propagation
from .backend_client import TracingBackendClient, create_backend_client
from .exceptions import (
    FeedbackError,
    SpanOperationError,
    TraceOperationError,
    TracingConfigurationError,
)
from .flush_controller import FlushController, FlushOutcome, RetryPolicy
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
    new_id,
    utc_now,
)
from .sampler import RuleLike, Sampler, SamplingRule

logger = get_logger("tracer")

T = TypeVar("T")

ClientFactory = Callable[[TracingSettings], TracingBackendClient]

AGENT_TRACE_VERSION = "1.0"
# Ended traces stay available for late feedback for this long
TRACE_REGISTRY_TTL_SECONDS = 5 * 60
# Traces never ended are dropped after this long, with their open spans
TRACE_MAX_OPEN_SECONDS = 60 * 60


def _best_effort(fallback: Any = None):
    """Turn any exception raised by a service method into a logged fallback value.

    ``fallback`` may be a callable receiving the method's arguments.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except Exception as e:
                logger.error(f"{fn.__name__} failed: {e}", exc_info=e, operation=fn.__name__)
                return fallback(*args, **kwargs) if callable(fallback) else fallback

        return wrapper

    return decorator


class _TraceRegistry:
    """Live traces by id.

    Ended traces are pruned after ``ttl_seconds``. Traces that are never
    ended are pruned ``max_open_seconds`` after they were added. ``on_expire``
    receives the ids of every pruned trace.
    """

    def __init__(
        self,
        ttl_seconds: float = TRACE_REGISTRY_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        max_open_seconds: float = TRACE_MAX_OPEN_SECONDS,
        on_expire: Optional[Callable[[Set[str]], None]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_open_seconds = max_open_seconds
        self._clock = clock
        self._on_expire = on_expire
        # trace_id -> (trace, added_at, ended_at)
        self._entries: Dict[str, Tuple[Trace, float, Optional[float]]] = {}

    def prune(self) -> None:
        now = self._clock()
        expired = {
            trace_id
            for trace_id, (_, added_at, ended_at) in self._entries.items()
            if (ended_at is not None and now - ended_at >= self.ttl_seconds)
            or (ended_at is None and now - added_at >= self.max_open_seconds)
        }
        if not expired:
            return
        for trace_id in expired:
            del self._entries[trace_id]
        if self._on_expire is not None:
            self._on_expire(expired)

    def add(self, trace: Trace) -> None:
        self.prune()
        self._entries[trace.trace_id] = (trace, self._clock(), None)

    def get(self, trace_id: str) -> Optional[Trace]:
        self.prune()
        entry = self._entries.get(trace_id)
        return entry[0] if entry else None

    def is_open(self, trace_id: str) -> bool:
        entry = self._entries.get(trace_id)
        return entry is not None and entry[2] is None

    def mark_ended(self, trace_id: str) -> None:
        entry = self._entries.get(trace_id)
        if entry is not None:
            self._entries[trace_id] = (entry[0], entry[1], self._clock())

    def __len__(self) -> int:
        return len(self._entries)


class TracingService:
    """Creates traces and spans, propagates context and flushes to the backend.

    The service is disabled (every call is a safe no-op) until ``initialize``
    succeeds, and stays disabled when collector credentials are missing.
    """

    def __init__(
        self,
        settings: Optional[TracingSettings] = None,
        client_factory: Optional[ClientFactory] = None,
        rng: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize tracing service.

        Args:
            settings: Tracing settings (default: loaded from the environment on initialize)
            client_factory: Builds the backend client (default: HTTPBackendClient)
            rng: Uniform [0, 1) source for sampling and backoff jitter
            sleep: Async sleep used between flush attempts
        """
        self._settings = settings
        self._client_factory = client_factory or create_backend_client
        self._rng = rng
        self._sleep = sleep

        self.client: Optional[TracingBackendClient] = None
        self.config: Optional[TracingSettings] = None
        self.flush_controller: Optional[FlushController] = None
        self.sampler = Sampler(
            rate=settings.sampling_rate if settings else TracingSettings().sampling_rate,
            rng=rng,
        )
        self._enabled = False
        self._traces = _TraceRegistry(on_expire=self._drop_spans_of)
        self._open_spans: Dict[str, Span] = {}

    # ── lifecycle ──────────────────────────────────────────────────
    def initialize(self) -> bool:
        """Load configuration and create the backend client.

        Any failure (missing credentials, invalid settings, client
        construction) disables tracing with a warning instead of raising.

        Returns:
            True if tracing is available afterwards
        """
        try:
            settings = self._settings if self._settings is not None else TracingSettings.from_env()
            missing = settings.missing_credentials()
            if missing:
                raise TracingConfigurationError(missing[0])

            self.client = self._client_factory(settings)
            self.config = settings
            self.sampler.set_sampling_rate(settings.sampling_rate)
            self.flush_controller = FlushController(self.client, settings, sleep=self._sleep, rng=self._rng)
            self._enabled = True

            logger.info(
                f"Tracing client initialized for project: {settings.project_name} "
                f"(sampling: {self.sampler.sampling_rate * 100:g}%)",
                project_name=settings.project_name,
            )
        except Exception as e:
            self._enabled = False
            self.client = None
            self.flush_controller = None
            logger.warning(f"Tracing initialization failed: {e}. Tracing will be disabled.")

        return self.is_available()

    async def shutdown(self) -> None:
        """Flush pending telemetry once with the configured timeout, then close the client."""
        if not self.is_available():
            return

        outcome = await self.flush(RetryPolicy(timeout_ms=self.config.flush_timeout_ms, retry_attempts=1))
        if outcome is not None and outcome.succeeded:
            logger.info("Traces flushed successfully on shutdown")
        elif outcome is not None:
            logger.error(f"Failed to flush traces on shutdown: {outcome.error_message}")

        try:
            await self.client.shutdown()
        except Exception as e:
            logger.error(f"Failed to close tracing client: {e}", exc_info=e)

    def is_available(self) -> bool:
        """Check if tracing is enabled and a backend client exists."""
        return self._enabled and self.client is not None

    def get_client(self) -> Optional[TracingBackendClient]:
        return self.client

    def get_config(self) -> Optional[TracingSettings]:
        return self.config

    def disable(self) -> None:
        """Turn tracing off at runtime; every call becomes a no-op."""
        self._enabled = False

    def _check_available(self) -> bool:
        if not self.is_available():
            logger.debug("Tracing client not available, skipping operation")
            return False
        return True

    # ── context propagation ────────────────────────────────────────
    async def run_with_context(self, context: Optional[TraceContext], fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Await ``fn`` with ``context`` propagated to every nested await and task."""
        return await propagation.run_with_context(context, fn, *args, **kwargs)

    def run_with_context_sync(self, context: Optional[TraceContext], fn: Callable[..., T], *args, **kwargs) -> T:
        return propagation.run_with_context_sync(context, fn, *args, **kwargs)

    def get_context(self) -> Optional[TraceContext]:
        return propagation.get_context()

    def link_to_remote_trace(
        self,
        remote_trace_id: str,
        remote_span_id: Optional[str] = None,
        relationship: str = "linked",
        remote_service: Optional[str] = None,
    ) -> Optional[TraceLink]:
        """Link the current context to a trace in another service.

        Traces created later in the same scope carry the link as ``linkedTrace``.
        """
        try:
            return propagation.link_to_remote_trace(
                remote_trace_id,
                remote_span_id=remote_span_id,
                relationship=relationship,
                remote_service=remote_service,
            )
        except Exception as e:
            logger.error(f"Failed to link remote trace {remote_trace_id}: {e}", exc_info=e)
            return None

    def extract_context_from_headers(self, headers: Mapping[str, Any]) -> Optional[TraceContext]:
        """Read a remote trace context from incoming request headers."""
        try:
            return header_codec.extract_context_from_headers(headers)
        except Exception as e:
            logger.error(f"Failed to extract trace context from headers: {e}", exc_info=e)
            return None

    def inject_context_to_headers(self) -> Dict[str, str]:
        """Headers carrying the current trace context for an outgoing request."""
        try:
            return header_codec.inject_context_to_headers()
        except Exception as e:
            logger.error(f"Failed to inject trace context into headers: {e}", exc_info=e)
            return {}

    # ── traces ─────────────────────────────────────────────────────
    def _build_trace_metadata(
        self,
        trace_id: str,
        metadata: Optional[Mapping[str, Any]],
        link_options: Optional[TraceLink],
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            **(metadata or {}),
            "traceId": trace_id,
            "timestamp": utc_now().isoformat(),
            "environment": self.config.environment,
        }

        parent = propagation.get_context()
        link = link_options or (parent.link if parent else None)
        if link is not None:
            result["linkedTrace"] = link.to_metadata()

        if parent is not None and parent.is_remote:
            result["parentTraceId"] = parent.trace_id
            result["parentSpanId"] = parent.span_id
            result["propagatedFrom"] = "remote"

        return result

    @_best_effort(None)
    def create_trace(
        self,
        name: str,
        input: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        tags: Optional[Sequence[str]] = None,
        link_options: Optional[TraceLink] = None,
    ) -> Optional[Trace]:
        """Create a new trace.

        The sampling decision is made here, once, for the whole trace.

        Args:
            name: Trace name (e.g., 'shark_audit_cognitive_chain')
            input: Input data that initiated the trace
            metadata: Metadata attached to the trace (also used by sampling rules)
            tags: Tags for filtering in the collector
            link_options: Explicit link to a trace in another service

        Returns:
            The trace, or None if tracing is unavailable, the trace was sampled
            out, or the backend failed
        """
        if not self._check_available():
            return None

        if not self.sampler.should_sample(name, metadata):
            logger.debug(f"Trace {name} sampled out", trace_name=name)
            return None

        trace_id = new_id()
        trace_metadata = self._build_trace_metadata(trace_id, metadata, link_options)

        try:
            remote = self.client.trace(
                id=trace_id,
                name=name,
                input=dict(input or {}),
                metadata=trace_metadata,
                tags=list(tags) if tags else None,
            )
        except Exception as e:
            raise TraceOperationError("create", name, {"error": str(e)}) from e

        trace = Trace(
            remote=remote,
            trace_id=trace_id,
            trace_name=name,
            metadata=trace_metadata,
            tags=tuple(tags or ()),
        )
        self._traces.add(trace)
        return trace

    async def with_trace(
        self,
        name: str,
        fn: Callable[[Optional[Trace]], Awaitable[T]],
        input: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> T:
        """Create a trace and run ``fn(trace)`` with its context propagated.

        ``fn`` receives None (and runs without a new context) when no trace
        was created. Exceptions raised by ``fn`` itself propagate unchanged.
        """
        trace = self.create_trace(name, input=input, metadata=metadata, tags=tags)
        if trace is None:
            return await fn(None)

        parent = propagation.get_context()
        context = TraceContext(
            trace_id=trace.trace_id,
            trace_name=trace.trace_name,
            baggage=parent.baggage if parent else None,
        )
        return await propagation.run_with_context(context, fn, trace)

    def create_agent_trace(
        self,
        agent_name: str,
        user_id: str,
        input: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Trace]:
        """Create a trace named ``{agent_name}_cognitive_chain`` for an AI agent run."""
        return self.create_trace(
            name=f"{agent_name}_cognitive_chain",
            input={"userId": user_id, **(input or {})},
            metadata={"agent": agent_name, "version": AGENT_TRACE_VERSION, **(metadata or {})},
        )

    def get_trace(self, trace_id: str) -> Optional[Trace]:
        """Look up a live (or recently ended) trace created by this service."""
        return self._traces.get(trace_id)

    @_best_effort(None)
    def end_trace(
        self,
        trace: Optional[Trace],
        success: bool = True,
        result: Optional[Mapping[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """End a trace with its outcome. No-op for None or an already ended trace."""
        if not trace or not self._traces.is_open(trace.trace_id):
            return

        output: Dict[str, Any] = {
            "success": success,
            "durationMs": trace.duration_ms(),
            **(result or {}),
        }
        if error:
            output["error"] = error

        # Marked first so a failing end is not retried by a second call
        self._traces.mark_ended(trace.trace_id)
        try:
            trace.remote.end(output=output)
        except Exception as e:
            raise TraceOperationError("end", trace.trace_name, {"error": str(e)}) from e

    # ── spans ──────────────────────────────────────────────────────
    def _register_span(
        self,
        remote: Any,
        span_id: str,
        trace_id: str,
        name: str,
        span_type: SpanType,
        metadata: Dict[str, Any],
        parent_span_id: Optional[str] = None,
    ) -> Span:
        span = Span(
            remote=remote,
            span_id=span_id,
            trace_id=trace_id,
            type=span_type,
            name=name,
            parent_span_id=parent_span_id,
            metadata=metadata,
        )
        self._open_spans[span_id] = span
        return span

    def _drop_spans_of(self, trace_ids: Set[str]) -> None:
        stale = [span_id for span_id, span in self._open_spans.items() if span.trace_id in trace_ids]
        for span_id in stale:
            del self._open_spans[span_id]
        logger.debug(f"Expired {len(trace_ids)} traces and {len(stale)} open spans")

    def _start_span(
        self,
        trace: Optional[Trace],
        name: str,
        span_type: SpanType,
        input: Optional[Mapping[str, Any]],
        metadata: Optional[Mapping[str, Any]],
    ) -> Optional[Span]:
        if not trace:
            return None

        span_id = new_id()
        span_metadata = {**(metadata or {}), "spanId": span_id}
        try:
            remote = trace.remote.span(
                id=span_id,
                name=name,
                type=span_type.value,
                input=dict(input or {}),
                metadata=span_metadata,
            )
        except Exception as e:
            raise SpanOperationError("create", name, span_type.value, {"error": str(e)}) from e

        return self._register_span(remote, span_id, trace.trace_id, name, span_type, span_metadata)

    @_best_effort(None)
    def create_span(
        self,
        trace: Optional[Trace],
        name: str,
        span_type: Union[SpanType, str],
        input: Mapping[str, Any],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Span]:
        """Create a top-level span of the given type."""
        return self._start_span(trace, name, SpanType(span_type), input, metadata)

    @_best_effort(None)
    def create_llm_span(
        self,
        trace: Optional[Trace],
        name: str,
        input: Mapping[str, Any],
        model: str,
        provider: Union[LLMProvider, str],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Span]:
        """Create a span for an LLM API call."""
        return self._start_span(
            trace,
            name,
            SpanType.LLM,
            input,
            {"model": model, "provider": getattr(provider, "value", provider), **(metadata or {})},
        )

    @_best_effort(None)
    def create_tool_span(
        self,
        trace: Optional[Trace],
        name: str,
        input: Mapping[str, Any],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Span]:
        """Create a span for a tool execution (calculation, business logic)."""
        return self._start_span(trace, name, SpanType.TOOL, input, metadata)

    @_best_effort(None)
    def create_retrieval_span(
        self,
        trace: Optional[Trace],
        name: str,
        query: Mapping[str, Any],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Span]:
        """Create a span for a data fetch (database query, API call, search)."""
        return self._start_span(trace, name, SpanType.RETRIEVAL, query, metadata)

    @_best_effort(None)
    def create_general_span(
        self,
        trace: Optional[Trace],
        name: str,
        input: Mapping[str, Any],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Span]:
        return self._start_span(trace, name, SpanType.GENERAL, input, metadata)

    @_best_effort(None)
    def create_nested_span(
        self,
        parent_span: Optional[Span],
        name: str,
        span_type: Union[SpanType, str],
        input: Mapping[str, Any],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Span]:
        """Create a span nested under another span, inheriting its trace id."""
        if not parent_span:
            return None

        span_type = SpanType(span_type)
        span_id = new_id()
        span_metadata = {
            **(metadata or {}),
            "spanId": span_id,
            "parentSpanId": parent_span.span_id,
        }
        try:
            remote = parent_span.remote.span(
                id=span_id,
                name=name,
                type=span_type.value,
                input=dict(input or {}),
                metadata=span_metadata,
            )
        except Exception as e:
            raise SpanOperationError("create", name, span_type.value, {"error": str(e)}) from e

        return self._register_span(
            remote,
            span_id,
            parent_span.trace_id,
            name,
            span_type,
            span_metadata,
            parent_span_id=parent_span.span_id,
        )

    @_best_effort(lambda trace, definitions: [None] * len(definitions))
    def create_span_batch(
        self,
        trace: Optional[Trace],
        definitions: Sequence[SpanDefinition],
    ) -> List[Optional[Span]]:
        """Create several spans at once.

        Returns:
            One entry per definition, in order; None where creation failed
        """
        if not trace:
            return [None] * len(definitions)

        return [self._create_batch_entry(trace, definition) for definition in definitions]

    @_best_effort(None)
    def _create_batch_entry(self, trace: Trace, definition: SpanDefinition) -> Optional[Span]:
        return self._start_span(
            trace,
            definition.name,
            SpanType(definition.type),
            definition.input,
            definition.metadata,
        )

    def get_open_span(self, span_id: Optional[str]) -> Optional[Span]:
        """Return a span created by this service that has not been ended yet."""
        if span_id is None:
            return None
        self._traces.prune()
        return self._open_spans.get(span_id)

    def _finish_span(self, span: Optional[Span], **end_kwargs: Any) -> None:
        if not span or self._open_spans.pop(span.span_id, None) is None:
            return
        try:
            span.remote.end(**end_kwargs)
        except Exception as e:
            raise SpanOperationError("end", span.name, span.type.value, {"error": str(e)}) from e

    @_best_effort(None)
    def end_span(
        self,
        span: Optional[Span],
        output: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """End a span with its output. No-op for None or an already ended span."""
        if not span:
            return
        self._finish_span(
            span,
            output=dict(output or {}),
            metadata={"durationMs": span.duration_ms(), **(metadata or {})},
        )

    @_best_effort(None)
    def end_llm_span(
        self,
        span: Optional[Span],
        output: Optional[Mapping[str, Any]] = None,
        usage: Optional[TokenUsage] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """End an LLM span, flattening token usage and an estimated cost into its metadata."""
        if not span:
            return

        span_metadata: Dict[str, Any] = {"durationMs": span.duration_ms()}
        estimated_cost: Optional[float] = None
        if usage is not None:
            span_metadata.update(usage.to_metadata())
            estimated_cost = (
                usage.prompt_tokens * self._pricing[0] + usage.completion_tokens * self._pricing[1]
            ) / 1_000_000
            span_metadata["estimatedCostUSD"] = estimated_cost
        span_metadata.update(metadata or {})

        self._finish_span(
            span,
            output=dict(output or {}),
            metadata=span_metadata,
            usage=usage.to_usage() if usage is not None else None,
            total_estimated_cost=estimated_cost,
        )

    @property
    def _pricing(self) -> Tuple[float, float]:
        settings = self.config or TracingSettings()
        return settings.llm_input_cost_per_million, settings.llm_output_cost_per_million

    @_best_effort(None)
    def end_span_batch(self, completions: Iterable[SpanCompletion]) -> None:
        """End several spans; a bad entry never blocks the others."""
        for completion in completions or ():
            if completion is not None:
                self._end_batch_entry(completion)

    @_best_effort(None)
    def _end_batch_entry(self, completion: SpanCompletion) -> None:
        self.end_span(completion.span, completion.output, completion.metadata)

    # ── feedback & scoring ─────────────────────────────────────────
    @_best_effort(False)
    def add_feedback(
        self,
        trace_id: str,
        name: str,
        value: float,
        category: Optional[str] = None,
        comment: Optional[str] = None,
        source: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Attach a feedback score (e.g. from an LLM judge) to a trace.

        Returns:
            True if the score was handed to the backend
        """
        if not self._check_available():
            return False

        if self._traces.get(trace_id) is None:
            logger.debug(f"Trace {trace_id} not in registry (may have expired). Feedback: {name}={value}")

        try:
            self.client.log_feedback_score(
                id=new_id(),
                trace_id=trace_id,
                name=name,
                value=value,
                category_name=category,
                reason=comment,
                source=source,
                metadata=dict(metadata or {}),
            )
        except Exception as e:
            raise FeedbackError(trace_id, name, {"error": str(e)}) from e
        return True

    @_best_effort(False)
    def add_span_score(
        self,
        span_id: str,
        name: str,
        value: float,
        unit: Optional[str] = None,
        comment: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Attach a score (latency, quality, ...) to a span."""
        if not self._check_available():
            return False

        try:
            self.client.log_span_score(
                id=new_id(),
                span_id=span_id,
                name=name,
                value=value,
                unit=unit,
                reason=comment,
                metadata=dict(metadata or {}),
            )
        except Exception as e:
            raise FeedbackError(span_id, name, {"error": str(e)}) from e
        return True

    # ── sampling ───────────────────────────────────────────────────
    def set_sampling_rate(self, rate: float) -> bool:
        return self.sampler.set_sampling_rate(rate)

    def get_sampling_rate(self) -> float:
        return self.sampler.sampling_rate

    def set_sampling_rules(self, rules: Iterable[RuleLike]) -> bool:
        """Replace the sampling rules; invalid rules leave the old list in place."""
        try:
            self.sampler.set_sampling_rules(rules)
            return True
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Invalid sampling rules rejected: {e}")
            return False

    def get_sampling_rules(self) -> List[SamplingRule]:
        return self.sampler.sampling_rules

    def should_sample(self, trace_name: str, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        return self.sampler.should_sample(trace_name, metadata)

    # ── flush ──────────────────────────────────────────────────────
    async def flush(self, policy: Optional[RetryPolicy] = None, **overrides: Any) -> Optional[FlushOutcome]:
        """Flush pending telemetry with timeout and retry.

        Args:
            policy: Retry policy; unset fields come from settings
            **overrides: RetryPolicy fields, e.g. ``retry_attempts=5``

        Returns:
            The outcome of this flush, or None when tracing is unavailable

        Raises:
            FlushException: Only when every attempt failed and throw_on_error is set
        """
        if not self._check_available():
            return None

        if overrides:
            try:
                base = policy.model_dump(exclude_unset=True) if policy else {}
                policy = RetryPolicy(**{**base, **overrides})
            except ValidationError as e:
                logger.warning(f"Invalid flush options {overrides}, using defaults: {e}")
                policy = RetryPolicy(throw_on_error=bool(overrides.get("throw_on_error", False)))

        return await self.flush_controller.flush(policy)


# Global tracer instance
_global_tracer: Optional[TracingService] = None


def get_tracer() -> TracingService:
    """Get or create the global tracing service, initialized from the environment."""
    global _global_tracer
    if _global_tracer is None:
        _global_tracer = TracingService()
        _global_tracer.initialize()
    return _global_tracer


def set_tracer(tracer: Optional[TracingService]) -> None:
    """Set (or clear) the global tracing service."""
    global _global_tracer
    _global_tracer = tracer
