"""Trace context propagation across async call chains.

Uses a ContextVar so that every coroutine, task and callback started inside
``run_with_context`` sees the same TraceContext without it being passed
explicitly. Tasks copy the context when they are created, so concurrently
running scopes never observe each other's context.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

from .models import TraceContext, TraceLink

logger = logging.getLogger(__name__)

T = TypeVar("T")

_current_context: ContextVar[Optional[TraceContext]] = ContextVar("trace_context", default=None)


def get_context() -> Optional[TraceContext]:
    """Get the context of the innermost enclosing scope, or None outside any scope."""
    return _current_context.get()


@contextmanager
def use_context(context: Optional[TraceContext]) -> Iterator[Optional[TraceContext]]:
    """Install ``context`` for the body of the with-block, then restore the previous one."""
    token = _current_context.set(context)
    try:
        yield context
    finally:
        _current_context.reset(token)


async def run_with_context(
    context: Optional[TraceContext],
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)`` with ``context`` as the current trace context.

    The context stays visible across every await inside ``fn`` and in any
    task ``fn`` spawns. The previous context is restored on exit, including
    when ``fn`` raises.

    Example:
        ctx = TraceContext(trace_id=trace.trace_id, trace_name=trace.trace_name)
        await run_with_context(ctx, handle_request, request)
    """
    with use_context(context):
        return await fn(*args, **kwargs)


def run_with_context_sync(
    context: Optional[TraceContext],
    fn: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Synchronous counterpart of ``run_with_context``."""
    with use_context(context):
        return fn(*args, **kwargs)


def link_to_remote_trace(
    remote_trace_id: str,
    remote_span_id: Optional[str] = None,
    relationship: str = "linked",
    remote_service: Optional[str] = None,
) -> Optional[TraceLink]:
    """Attach a cross-service link to the current context.

    The link is visible for the rest of the current scope (and to traces
    created in it). Without a current context this only logs.

    Returns:
        The attached link, or None when there was no context to link
    """
    ctx = _current_context.get()
    if ctx is None:
        logger.debug("No current context to link trace to")
        return None

    link = TraceLink(
        remote_trace_id=remote_trace_id,
        remote_span_id=remote_span_id,
        relationship=relationship,
        remote_service=remote_service,
    )
    # The enclosing scope's token still restores the pre-scope value on exit
    _current_context.set(ctx.with_link(link))
    logger.debug(
        "Linked trace %s to remote trace %s (%s)",
        ctx.trace_id,
        remote_trace_id,
        relationship,
    )
    return link
