import io
import json

from ikpa_backend.modules.observability.logging import StructuredLogger, get_logger
from ikpa_backend.modules.observability.tracing.models import TraceContext
from ikpa_backend.modules.observability.tracing.propagation import use_context


def _entries(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_writes_json_lines():
    stream = io.StringIO()
    logger = StructuredLogger("tracer", output_stream=stream, json_output=True)

    logger.info("Trace created", trace_name="audit")

    entry = _entries(stream)[0]
    assert entry["level"] == "INFO"
    assert entry["service"] == "ikpa"
    assert entry["component"] == "tracer"
    assert entry["message"] == "Trace created"
    assert entry["trace_name"] == "audit"
    assert "trace_id" not in entry


def test_trace_ids_come_from_current_context():
    stream = io.StringIO()
    logger = StructuredLogger("flush", output_stream=stream, json_output=True)

    with use_context(TraceContext(trace_id="t-1", trace_name="n", span_id="s-1")):
        logger.warning("Flush attempt failed")
    logger.warning("outside", trace_id="explicit")

    inside, outside = _entries(stream)
    assert (inside["trace_id"], inside["span_id"]) == ("t-1", "s-1")
    assert outside["trace_id"] == "explicit"


def test_error_records_exception_details():
    stream = io.StringIO()
    logger = StructuredLogger("tracer", output_stream=stream, json_output=True)

    logger.error("create_trace failed", exc_info=RuntimeError("collector down"))

    entry = _entries(stream)[0]
    assert entry["exception_type"] == "RuntimeError"
    assert entry["exception_message"] == "collector down"


def test_json_output_can_be_disabled():
    stream = io.StringIO()

    StructuredLogger("tracer", output_stream=stream, json_output=False).info("quiet")

    assert stream.getvalue() == ""


def test_get_logger_caches_instances():
    assert get_logger("sampler") is get_logger("sampler")
