"""
Factory functions for OTLP exporters (gRPC logging, metrics, trace).

Endpoint and headers come from the standard OTEL_EXPORTER_OTLP_* variables.
"""

import os
from typing import Dict, Optional

from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

DEFAULT_ENDPOINT: str = os.getenv(
    "OTEL_EXPORTER_OTLP_ENDPOINT", "http://otel-collector:4317"
)
DEFAULT_HEADERS: Optional[str] = os.getenv("OTEL_EXPORTER_OTLP_HEADERS")


def _common_kwargs() -> Dict[str, object]:
    headers: Optional[Dict[str, str]] = (
        dict(h.split("=", 1) for h in DEFAULT_HEADERS.split(",") if "=" in h)
        if DEFAULT_HEADERS
        else None
    )
    return {
        "endpoint": DEFAULT_ENDPOINT,
        "headers": headers,
        "insecure": DEFAULT_ENDPOINT.startswith("http://"),
    }


def build_trace_exporter() -> OTLPSpanExporter:
    return OTLPSpanExporter(**_common_kwargs())


def build_metric_exporter() -> OTLPMetricExporter:
    return OTLPMetricExporter(**_common_kwargs())


def build_log_exporter() -> OTLPLogExporter:
    return OTLPLogExporter(**_common_kwargs())
