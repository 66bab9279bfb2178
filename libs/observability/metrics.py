"""
Metrics initialization and meter provider for OpenTelemetry.
"""

from typing import Optional

from opentelemetry import metrics
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

from libs.observability.otlp_exporter import build_metric_exporter
from libs.observability.resource import (
    SERVICE_NAME_VALUE,
    build_resource,
    exporters_enabled,
)

_meter: Optional[Meter] = None


def init_metrics() -> None:
    """
    Initialize the OTel MeterProvider and register an OTLP metric exporter.

    Idempotent; repeated calls reuse the process-wide MeterProvider.
    """
    global _meter

    if _meter is not None:
        return

    readers = (
        [PeriodicExportingMetricReader(build_metric_exporter())]
        if exporters_enabled()
        else []
    )
    provider = MeterProvider(resource=build_resource(), metric_readers=readers)

    metrics.set_meter_provider(provider)
    _meter = metrics.get_meter(SERVICE_NAME_VALUE)


def get_meter() -> Meter:
    """
    Retrieve the default Meter for the current job.
    """
    if _meter is None:
        init_metrics()
    return metrics.get_meter(SERVICE_NAME_VALUE)
