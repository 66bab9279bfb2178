"""
Observability bootstrap utilities for logging, tracing, and metrics.

This module provides:
- a unified initialization entrypoint (`init_observability`)
- stable metric instruments for batch jobs
"""

import logging
from typing import Tuple

from opentelemetry.metrics import Counter, Histogram

from libs.observability.logging import init_logging
from libs.observability.metrics import get_meter, init_metrics
from libs.observability.tracing import init_tracing


def init_observability(level: int = logging.INFO) -> None:
    """
    Initialize logging, tracing, and metrics for the current job.

    Called once by the job entrypoint, never by the transforms.

    Args:
        level: Logging verbosity level for the root logger.
    """
    init_logging(level=level)
    init_tracing()
    init_metrics()


def get_job_instruments(job_name: str) -> Tuple[Counter, Histogram]:
    """
    Create OpenTelemetry instruments for a batch job.

    Returns:
        A tuple containing:
            rows_written: Counter of rows written, labelled by `table`.
            latency: Histogram of end-to-end job latency (ms).
    """
    meter = get_meter()

    rows_written: Counter = meter.create_counter(
        name=f"batch_{job_name}_rows_written",
        description="Rows written per output table",
        unit="1",
    )

    latency: Histogram = meter.create_histogram(
        name=f"batch_{job_name}_latency_ms",
        description="End-to-end batch job latency in milliseconds",
        unit="ms",
    )

    return rows_written, latency
