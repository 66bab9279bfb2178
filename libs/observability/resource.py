"""
OpenTelemetry resource shared by the log, trace and metric pipelines.
"""

import os
from typing import Dict

from opentelemetry.sdk.resources import Resource
from opentelemetry.semconv.attributes.service_attributes import SERVICE_NAME

SERVICE_NAME_VALUE: str = os.getenv("OTEL_SERVICE_NAME", "funnelscope-batch")
ENVIRONMENT: str = os.getenv(
    "OTEL_RESOURCE_ATTRIBUTES",
    "deployment.environment=local",
)


def exporters_enabled() -> bool:
    """OTLP export is skipped when OTEL_SDK_DISABLED=true (local runs, CI)."""
    return os.getenv("OTEL_SDK_DISABLED", "false").lower() != "true"


def build_resource() -> Resource:
    """
    Build the process Resource from OTEL_SERVICE_NAME and
    OTEL_RESOURCE_ATTRIBUTES (comma separated key=value pairs).
    """
    attrs: Dict[str, str] = {
        kv.split("=", 1)[0]: kv.split("=", 1)[1]
        for kv in ENVIRONMENT.split(",")
        if "=" in kv
    }
    return Resource.create({SERVICE_NAME: SERVICE_NAME_VALUE, **attrs})
