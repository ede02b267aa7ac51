"""ASGI middleware that continues incoming distributed traces."""

from typing import Any, Awaitable, Callable, Dict, List, MutableMapping, Optional

from starlette.datastructures import Headers

from ikpa_backend.logger import logger

from .propagation import run_with_context
from .tracer import TracingService, get_tracer

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class TraceContextMiddleware:
    """Runs each request inside the trace context sent by the caller.

    Traces created while handling the request see the remote parent and are
    stamped with ``parentTraceId`` / ``parentSpanId``.

    Example:
        app = FastAPI()
        app.add_middleware(TraceContextMiddleware)
    """

    def __init__(self, app: ASGIApp, tracer: Optional[TracingService] = None):
        self.app = app
        self.tracer = tracer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        values: Dict[str, List[str]] = {key: headers.getlist(key) for key in headers.keys()}

        tracer = self.tracer or get_tracer()
        context = tracer.extract_context_from_headers(values)
        if context is None:
            await self.app(scope, receive, send)
            return

        logger.debug(f"Continuing remote trace {context.trace_id} for {scope.get('path', '')}")
        await run_with_context(context, self.app, scope, receive, send)
