"""Backend clients that ship traces, spans and scores to a collector.

The tracing service only talks to the abstract contract below. The buffered
implementations record every create/end/score as an event and send the
batch when flush() is called; a batch is only dropped once it was sent.
"""

import json
import logging
import sys
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from ikpa_backend.config import TracingSettings

from .models import new_id

logger = logging.getLogger(__name__)


class RemoteSpan(ABC):
    """Backend handle for a span."""

    @abstractmethod
    def span(
        self,
        name: str,
        type: str,
        input: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        id: Optional[str] = None,
    ) -> "RemoteSpan":
        """Create a child span nested under this span, using ``id`` when given."""
        pass

    @abstractmethod
    def end(
        self,
        output: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        usage: Optional[Mapping[str, int]] = None,
        total_estimated_cost: Optional[float] = None,
    ) -> None:
        """Finish the span with its output."""
        pass


class RemoteTrace(ABC):
    """Backend handle for a trace."""

    @abstractmethod
    def span(
        self,
        name: str,
        type: str,
        input: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        id: Optional[str] = None,
    ) -> RemoteSpan:
        """Create a top-level span in this trace, using ``id`` when given."""
        pass

    @abstractmethod
    def end(self, output: Optional[Mapping[str, Any]] = None) -> None:
        """Finish the trace with its output."""
        pass


class TracingBackendClient(ABC):
    """Contract of the collector client used by the tracing service."""

    @abstractmethod
    def trace(
        self,
        name: str,
        input: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        tags: Optional[Sequence[str]] = None,
        id: Optional[str] = None,
    ) -> RemoteTrace:
        """Start a trace in the backend.

        ``id`` is the caller's trace id; scores later reference it, so the
        backend must adopt it instead of generating its own.
        """
        pass

    @abstractmethod
    async def flush(self) -> None:
        """Deliver everything buffered so far. Raises on failure."""
        pass

    @abstractmethod
    def log_feedback_score(self, **score: Any) -> None:
        """Attach a feedback score to a trace."""
        pass

    @abstractmethod
    def log_span_score(self, **score: Any) -> None:
        """Attach a score to a span."""
        pass

    async def shutdown(self) -> None:
        """Cleanup resources on shutdown."""
        pass


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class _BufferedSpan(RemoteSpan):
    def __init__(
        self,
        client: "BufferedBackendClient",
        trace_id: str,
        parent_id: Optional[str],
        name: str,
        id: Optional[str] = None,
    ):
        self.id = id or new_id()
        self.trace_id = trace_id
        self.parent_id = parent_id
        self.name = name
        self._client = client

    def span(self, name, type, input=None, metadata=None, id=None) -> RemoteSpan:
        return self._client._start_span(self.trace_id, self.id, name, type, input, metadata, id=id)

    def end(self, output=None, metadata=None, usage=None, total_estimated_cost=None) -> None:
        self._client._record(
            "span_end",
            id=self.id,
            trace_id=self.trace_id,
            output=dict(output or {}),
            metadata=dict(metadata or {}),
            usage=dict(usage) if usage else None,
            total_estimated_cost=total_estimated_cost,
        )


class _BufferedTrace(RemoteTrace):
    def __init__(self, client: "BufferedBackendClient", name: str, id: Optional[str] = None):
        self.id = id or new_id()
        self.name = name
        self._client = client

    def span(self, name, type, input=None, metadata=None, id=None) -> RemoteSpan:
        return self._client._start_span(self.id, None, name, type, input, metadata, id=id)

    def end(self, output=None) -> None:
        self._client._record("trace_end", id=self.id, output=dict(output or {}))


class BufferedBackendClient(TracingBackendClient):
    """Records backend calls as events and sends them in batches on flush().

    Subclasses implement ``_send`` for a concrete destination.
    """

    def __init__(self, max_buffer_size: int = 10000):
        """Initialize buffered client.

        Args:
            max_buffer_size: Oldest events are dropped beyond this size
        """
        self.max_buffer_size = max_buffer_size
        self.buffer: List[Dict[str, Any]] = []

    def _record(self, event_type: str, **payload: Any) -> None:
        self.buffer.append({"type": event_type, "timestamp": _timestamp(), **payload})
        self._trim()

    def _trim(self) -> None:
        overflow = len(self.buffer) - self.max_buffer_size
        if overflow > 0:
            del self.buffer[:overflow]
            logger.warning(f"Trace buffer full, dropped {overflow} oldest event(s)")

    def _start_span(self, trace_id, parent_id, name, type, input, metadata, id=None) -> RemoteSpan:
        span = _BufferedSpan(self, trace_id, parent_id, name, id=id)
        self._record(
            "span_create",
            id=span.id,
            trace_id=trace_id,
            parent_span_id=parent_id,
            name=name,
            span_type=str(getattr(type, "value", type)),
            input=dict(input or {}),
            metadata=dict(metadata or {}),
        )
        return span

    def trace(self, name, input=None, metadata=None, tags=None, id=None) -> RemoteTrace:
        trace = _BufferedTrace(self, name, id=id)
        self._record(
            "trace_create",
            id=trace.id,
            name=name,
            input=dict(input or {}),
            metadata=dict(metadata or {}),
            tags=list(tags or []),
        )
        return trace

    def log_feedback_score(self, **score: Any) -> None:
        self._record("feedback_score", **score)

    def log_span_score(self, **score: Any) -> None:
        self._record("span_score", **score)

    async def flush(self) -> None:
        """Send the current buffer; events stay buffered if sending fails."""
        if not self.buffer:
            return
        # Events recorded while sending go to the new buffer
        batch, self.buffer = self.buffer, []
        try:
            await self._send(batch)
        except BaseException:
            # Also covers cancellation by the flush timeout
            self.buffer = batch + self.buffer
            self._trim()
            raise

    @abstractmethod
    async def _send(self, events: List[Dict[str, Any]]) -> None:
        pass


class ConsoleBackendClient(BufferedBackendClient):
    """Writes flushed events to a stream for local debugging."""

    def __init__(self, pretty_print: bool = True, output_stream=None, **kwargs: Any):
        """Initialize console client.

        Args:
            pretty_print: Whether to format JSON output
            output_stream: Output stream (default: sys.stdout)
        """
        super().__init__(**kwargs)
        self.pretty_print = pretty_print
        self.output_stream = output_stream or sys.stdout

    async def _send(self, events: List[Dict[str, Any]]) -> None:
        if self.pretty_print:
            self.output_stream.write(json.dumps(events, indent=2, default=str) + "\n")
        else:
            self.output_stream.write(json.dumps(events, default=str) + "\n")
        self.output_stream.flush()


class HTTPBackendClient(BufferedBackendClient):
    """Sends flushed events to the collector's HTTP batch endpoint."""

    def __init__(
        self,
        settings: TracingSettings,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        **kwargs: Any,
    ):
        """Initialize HTTP client.

        Args:
            settings: Collector URL, credentials and project
            client: Preconfigured httpx client (default: new AsyncClient)
            timeout: Request timeout in seconds for the default client
        """
        super().__init__(**kwargs)
        self.settings = settings
        self.endpoint = f"{settings.api_url.rstrip('/')}/v1/batch"
        self.headers = {
            "authorization": settings.api_key or "",
            "comet-workspace": settings.workspace_name or "",
        }
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _send(self, events: List[Dict[str, Any]]) -> None:
        payload = {"project": self.settings.project_name, "events": events}
        response = await self.client.post(
            self.endpoint,
            content=json.dumps(payload, default=str),
            headers={**self.headers, "content-type": "application/json"},
        )
        response.raise_for_status()
        logger.debug(f"Sent {len(events)} trace event(s) to {self.endpoint}")

    async def shutdown(self) -> None:
        """Close the HTTP client. Remaining events are left to the caller's flush."""
        await self.client.aclose()


def create_backend_client(settings: TracingSettings) -> TracingBackendClient:
    """Default client factory used by the tracing service."""
    return HTTPBackendClient(settings)
