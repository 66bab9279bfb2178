from __future__ import annotations

"""
Funnel & retention batch job: raw events → silver → gold.

Responsibilities:
- Read the raw event log and normalize it (silver events / users).
- Build the per-user ordered funnel and its per-device summary.
- Assign cohorts and compute weekly and day-N retention.
- Run post-run validation checks (warnings only).
- Write every table to the configured storage root (overwrite).

Each run recomputes everything from the full raw log; identical input and
configuration yield identical tables.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List

from opentelemetry.metrics import Counter
from pyspark.sql import DataFrame, SparkSession

from apps.batch.config import BatchPaths, get_batch_paths
from apps.batch.gold.funnel import build_user_funnel, summarize_funnel
from apps.batch.gold.retention import (
    assign_cohorts,
    day_n_retention,
    pivot_day_n,
    weekly_retention,
)
from apps.batch.silver.events import normalize_events, read_raw_events
from apps.batch.silver.user import build_silver_users
from apps.batch.utils.spark import get_spark_session
from apps.batch.validation import run_validations
from libs.config import AnalysisConfig, AppConfig
from libs.models.analytics import ValidationIssue
from libs.observability import (
    get_job_instruments,
    get_logger,
    get_tracer,
    init_observability,
)

logger: logging.Logger = get_logger("batch.pipeline")
tracer = get_tracer("funnelscope.batch.pipeline")

JOB_NAME = "funnel_retention"


@dataclass(frozen=True)
class PipelineOutputs:
    """All tables produced by one run, keyed to their BatchPaths location."""

    events: DataFrame
    users: DataFrame
    funnel: DataFrame
    funnel_summary: DataFrame
    cohorts: DataFrame
    retention_weekly: DataFrame
    retention_day_n: DataFrame
    retention_day_n_pivot: DataFrame

    def tables(self, paths: BatchPaths) -> Dict[str, DataFrame]:
        return {
            paths.silver_events: self.events,
            paths.silver_users: self.users,
            paths.gold_funnel: self.funnel,
            paths.gold_funnel_summary: self.funnel_summary,
            paths.gold_cohorts: self.cohorts,
            paths.gold_retention_weekly: self.retention_weekly,
            paths.gold_retention_day_n: self.retention_day_n,
            paths.gold_retention_day_n_pivot: self.retention_day_n_pivot,
        }


def build_outputs(raw: DataFrame, analysis: AnalysisConfig) -> PipelineOutputs:
    """
    Pure transform chain from the raw log to every output table.

    Nothing is written; callers decide where the frames go.
    """
    events = normalize_events(raw, analysis.start_date, analysis.end_date).cache()

    funnel = build_user_funnel(
        events,
        window_days=analysis.funnel_window_days,
        device_filter=analysis.device_filter,
    )
    cohorts = assign_cohorts(events, device_filter=analysis.device_filter)
    day_n = day_n_retention(
        events,
        cohorts,
        min_cohort_size=analysis.cohort_size_threshold,
    )

    return PipelineOutputs(
        events=events,
        users=build_silver_users(events),
        funnel=funnel,
        funnel_summary=summarize_funnel(funnel),
        cohorts=cohorts,
        retention_weekly=weekly_retention(
            events,
            cohorts,
            min_cohort_size=analysis.cohort_size_threshold,
        ),
        retention_day_n=day_n,
        retention_day_n_pivot=pivot_day_n(day_n),
    )


def validate_outputs(
    outputs: PipelineOutputs,
    analysis: AnalysisConfig,
) -> List[ValidationIssue]:
    return run_validations(
        outputs.funnel,
        outputs.retention_weekly,
        outputs.retention_day_n,
        window_days=analysis.funnel_window_days,
    )


def _write_outputs(
    outputs: PipelineOutputs,
    paths: BatchPaths,
    table_format: str,
    rows_written: Counter,
) -> None:
    for location, frame in outputs.tables(paths).items():
        writer = frame.write.format(table_format).mode("overwrite")
        if location == paths.silver_events:
            # Whole-table replace: partitions outside this run must not survive.
            writer = writer.partitionBy("event_date").option(
                "partitionOverwriteMode",
                "static",
            )
        writer.save(location)

        rows = frame.count()
        rows_written.add(rows, {"table": location.rsplit("/", 1)[-1]})
        logger.info(
            "Table written.",
            extra={"output_path": location, "rows": rows, "format": table_format},
        )


def _run_job(spark: SparkSession, config: AppConfig, rows_written: Counter) -> None:
    """
    Core job logic: read raw events → build outputs → validate → write.
    """
    paths = get_batch_paths()
    analysis = config.analysis

    logger.info(
        "Starting funnel & retention job.",
        extra={
            "start_date": analysis.start_date.isoformat(),
            "end_date": analysis.end_date.isoformat(),
            "funnel_window_days": analysis.funnel_window_days,
            "cohort_size_threshold": analysis.cohort_size_threshold,
            "device_filter": (
                analysis.device_filter.value if analysis.device_filter else None
            ),
        },
    )

    raw = read_raw_events(spark, config.source)
    outputs = build_outputs(raw, analysis)
    validate_outputs(outputs, analysis)
    _write_outputs(outputs, paths, config.storage.table_format, rows_written)

    logger.info("Funnel & retention job completed.")


def main() -> None:
    """
    Entrypoint: run the funnel & retention job.

    Wraps the job with OTEL tracing + latency histogram. Any failure aborts
    the whole run.
    """
    config = AppConfig.load()
    init_observability(
        level=getattr(logging, config.service.log_level.upper(), logging.INFO),
    )
    rows_written, job_latency_ms = get_job_instruments(JOB_NAME)

    spark = get_spark_session("funnel-retention")
    start = time.perf_counter()

    with tracer.start_as_current_span("funnel_retention_job"):
        try:
            _run_job(spark, config, rows_written)
        except Exception:
            logger.error("Funnel & retention job failed.", exc_info=True)
            raise
        finally:
            latency_ms = (time.perf_counter() - start) * 1000.0
            job_latency_ms.record(latency_ms)
            logger.info(
                "Funnel & retention job latency recorded.",
                extra={"latency_ms": latency_ms},
            )
            spark.stop()


if __name__ == "__main__":
    main()
