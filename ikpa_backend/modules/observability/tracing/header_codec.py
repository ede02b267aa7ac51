"""Encode and decode trace context to and from wire headers.

Header contract:

    x-trace-id    in/out   primary trace identifier
    x-span-id     in/out   optional current span
    x-trace-name  in/out   optional, defaults to "remote_trace"
    traceparent   in       W3C-style fallback when x-trace-id is absent
    baggage       in/out   "k=v,k=v", values URL-encoded
"""

from typing import Dict, Mapping, Optional, Sequence, Union
from urllib.parse import quote, unquote

from .models import TraceContext
from .propagation import get_context

TRACE_ID_HEADER = "x-trace-id"
SPAN_ID_HEADER = "x-span-id"
TRACE_NAME_HEADER = "x-trace-name"
TRACEPARENT_HEADER = "traceparent"
BAGGAGE_HEADER = "baggage"

DEFAULT_REMOTE_TRACE_NAME = "remote_trace"

HeaderValue = Union[str, Sequence[str], None]


def _normalize(headers: Mapping[str, HeaderValue]) -> Dict[str, str]:
    """Lower-case header names and collapse multi-valued headers to their first value."""
    normalized: Dict[str, str] = {}
    for name, value in headers.items():
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None or value == "":
            continue
        normalized.setdefault(name.lower(), value)
    return normalized


def parse_baggage(raw: str) -> Dict[str, str]:
    """Parse a ``k=v,k=v`` baggage header, URL-decoding values."""
    baggage: Dict[str, str] = {}
    for item in raw.split(","):
        key, sep, value = item.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            continue
        baggage[key] = unquote(value)
    return baggage


def format_baggage(baggage: Mapping[str, str]) -> str:
    return ",".join(f"{key}={quote(str(value), safe='')}" for key, value in baggage.items())


def extract_context_from_headers(headers: Mapping[str, HeaderValue]) -> Optional[TraceContext]:
    """Build a remote TraceContext from incoming request headers.

    Args:
        headers: Header mapping; names are matched case-insensitively and
            list values contribute their first element

    Returns:
        TraceContext marked ``is_remote``, or None when no trace header is present
    """
    values = _normalize(headers)

    trace_id = values.get(TRACE_ID_HEADER) or values.get(TRACEPARENT_HEADER)
    if not trace_id:
        return None

    baggage = parse_baggage(values[BAGGAGE_HEADER]) if BAGGAGE_HEADER in values else {}

    return TraceContext(
        trace_id=trace_id,
        span_id=values.get(SPAN_ID_HEADER),
        trace_name=values.get(TRACE_NAME_HEADER) or DEFAULT_REMOTE_TRACE_NAME,
        baggage=baggage or None,
        is_remote=True,
    )


def inject_context_to_headers(context: Optional[TraceContext] = None) -> Dict[str, str]:
    """Serialize a trace context (default: the current one) into outgoing headers.

    Returns:
        Header dict to merge into an outgoing request, empty when there is no context
    """
    ctx = context if context is not None else get_context()
    if ctx is None:
        return {}

    headers = {
        TRACE_ID_HEADER: ctx.trace_id,
        TRACE_NAME_HEADER: ctx.trace_name,
    }
    if ctx.span_id:
        headers[SPAN_ID_HEADER] = ctx.span_id
    if ctx.baggage:
        headers[BAGGAGE_HEADER] = format_baggage(ctx.baggage)

    return headers
