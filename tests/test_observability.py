# test_observability.py
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from libs.observability import stage_span


@pytest.fixture
def exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(exporter, monkeypatch):
    monkeypatch.delenv("OTEL_SDK_DISABLED", raising=False)
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider.get_tracer("funnelscope-tests")


def test_stage_span_sets_string_attributes(tracer, exporter):
    with stage_span(tracer, "normalize_events", {"window_days": 30}):
        pass

    (span,) = exporter.get_finished_spans()
    assert span.name == "normalize_events"
    assert span.attributes["window_days"] == "30"
    assert span.status.status_code == StatusCode.UNSET


def test_stage_span_records_failure_once(tracer, exporter):
    with pytest.raises(ValueError, match="bad window"):
        with stage_span(tracer, "build_user_funnel"):
            raise ValueError("bad window")

    (span,) = exporter.get_finished_spans()
    exceptions = [e for e in span.events if e.name == "exception"]
    assert len(exceptions) == 1
    assert span.status.status_code == StatusCode.ERROR
