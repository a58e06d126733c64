"""Unit tests for observability module."""

import json
import logging
import sys

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY
import pytest

from athlete_search.observability import (
    INDEX_WRITES,
    SEARCH_REQUESTS,
    JsonFormatter,
    configure_logging,
    create_span,
    get_metrics,
    get_trace_context,
    set_trace_context,
    tracing as tracing_module,
)
from athlete_search.observability.context import trace_context


def _record(msg: str, level: int = logging.INFO, name: str = "athlete_search.search.executor") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture
def span_exporter(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", provider.get_tracer("test"))
    return exporter


@pytest.fixture(autouse=True)
def reset_trace_context():
    token = trace_context.set(None)
    yield
    trace_context.reset(token)


@pytest.mark.unit
class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_format_includes_trace_context(self):
        set_trace_context("a" * 32, "b" * 16, search_mode="smart")
        data = json.loads(JsonFormatter().format(_record("searched")))

        assert data["message"] == "searched"
        assert data["level"] == "INFO"
        assert data["trace_id"] == "a" * 32
        assert data["span_id"] == "b" * 16
        assert data["search_mode"] == "smart"
        assert data["component"] == "executor"
        assert "timestamp" in data

    def test_extra_fields_are_kept_and_secrets_redacted(self):
        record = _record("rebuild")
        record.documents = 10
        record.token = "hunter2"
        data = json.loads(JsonFormatter().format(record))

        assert data["documents"] == 10
        assert data["token"] == "[REDACTED]"

    def test_long_messages_are_truncated(self):
        data = json.loads(JsonFormatter().format(_record("x" * 5000)))
        assert len(data["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3

    def test_exception_is_formatted(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("t", logging.ERROR, "t.py", 1, "failed", (), exc_info=sys.exc_info())
        data = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in data["exception"]


@pytest.mark.unit
class TestConfigureLogging:
    def test_installs_single_handler(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            configure_logging("debug", json_output=True, logger_levels={"athlete_search.ingest": "warning"})
            configure_logging("debug", json_output=True)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("athlete_search.ingest").level == logging.WARNING
        finally:
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])
            logging.getLogger("athlete_search.ingest").setLevel(logging.NOTSET)


@pytest.mark.unit
class TestTraceContext:
    def test_context_is_created_on_first_use(self):
        ctx = get_trace_context()
        assert len(ctx["trace_id"]) == 32
        assert len(ctx["span_id"]) == 16
        assert get_trace_context()["trace_id"] == ctx["trace_id"]


@pytest.mark.unit
class TestCreateSpan:
    def test_records_attributes_and_updates_span_id(self, span_exporter):
        set_trace_context("c" * 32, "d" * 16)
        with create_span("search.smart", attributes={"search.page_no": 1, "ignored": None}) as span:
            span_id = format(span.get_span_context().span_id, "016x")
            assert get_trace_context()["span_id"] == span_id

        (finished,) = span_exporter.get_finished_spans()
        assert finished.name == "search.smart"
        assert finished.attributes["search.page_no"] == 1
        assert "ignored" not in finished.attributes

    def test_error_status_on_exception(self, span_exporter):
        with pytest.raises(ValueError), create_span("index.upsert"):
            raise ValueError("bad")

        (finished,) = span_exporter.get_finished_spans()
        assert finished.status.status_code is StatusCode.ERROR


@pytest.mark.unit
class TestMetrics:
    def test_counters_reach_prometheus(self):
        def sample(name, labels):
            return REGISTRY.get_sample_value(name, labels) or 0.0

        before = sample("athlete_search_requests_total", {"mode": "unit", "status": "ok"})
        SEARCH_REQUESTS.labels(mode="unit", status="ok").inc()
        assert sample("athlete_search_requests_total", {"mode": "unit", "status": "ok"}) == before + 1

        INDEX_WRITES.labels(operation="unit", status="ok").inc(2)
        assert sample("athlete_index_writes_total", {"operation": "unit", "status": "ok"}) >= 2

    def test_exposition_lists_search_metrics(self):
        output = get_metrics()
        assert b"athlete_search_latency_seconds" in output
        assert b"athlete_index_document_count" in output
