import logging

from opentelemetry.sdk.trace import TracerProvider

from repairdesk.core.config import Settings
from repairdesk.core.logging import TraceContextFilter, configure_logging, init_tracer, parse_otlp_headers


def test_parse_otlp_headers_skips_malformed_items():
    assert parse_otlp_headers("api-key=abc, x-team = repairs,broken,") == {"api-key": "abc", "x-team": "repairs"}
    assert parse_otlp_headers(None) == {}


def test_configure_logging_returns_application_logger():
    logger = configure_logging(Settings(log_level="debug"))

    assert logger.name == "repairdesk"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_trace_context_filter_stamps_records():
    record = logging.LogRecord("repairdesk", logging.INFO, __file__, 1, "hello", None, None)
    TraceContextFilter().filter(record)
    assert record.trace_id == "-"

    tracer = TracerProvider().get_tracer(__name__)
    with tracer.start_as_current_span("repair_ticket.test") as span:
        TraceContextFilter().filter(record)
    assert record.trace_id == format(span.get_span_context().trace_id, "032x")


def test_tracing_disabled_by_default():
    assert init_tracer(Settings(otel_enabled=False)) is None
