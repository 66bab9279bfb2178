"""
OpenTelemetry tracing initialization and tracer helpers.
"""

from contextlib import contextmanager
from typing import Iterator, Mapping

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Tracer

from libs.observability.otlp_exporter import build_trace_exporter
from libs.observability.resource import (
    SERVICE_NAME_VALUE,
    build_resource,
    exporters_enabled,
)


def init_tracing() -> None:
    """
    Initialize the global TracerProvider and configure the OTLP span exporter.
    """
    provider = TracerProvider(resource=build_resource())
    if exporters_enabled():
        provider.add_span_processor(BatchSpanProcessor(build_trace_exporter()))
    trace.set_tracer_provider(provider)


def get_tracer(name: str | None = None) -> Tracer:
    """
    Get a Tracer instance for the given instrumentation scope.

    Without init_tracing() the API returns a no-op tracer, so transforms can
    open spans unconditionally.
    """
    return trace.get_tracer(name or SERVICE_NAME_VALUE)


@contextmanager
def stage_span(
    tracer: Tracer,
    name: str,
    attributes: Mapping[str, object] | None = None,
) -> Iterator[Span]:
    """
    Span around one pipeline stage. start_as_current_span records any
    exception and sets ERROR status on exit.
    """
    with tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, str(value))
        yield span
