# test_pipeline.py
from datetime import date, timedelta

import pytest
from opentelemetry.metrics import NoOpMeter

from apps.batch.config import BatchPaths
from apps.batch.pipeline import (
    PipelineOutputs,
    _write_outputs,
    build_outputs,
    validate_outputs,
)
from libs.config import AnalysisConfig
from libs.models.events import DeviceCategory
from conftest import T0, micros


def _raw_rows():
    rows = []
    for i in range(12):
        user = f"user_{i:02d}"
        start = T0 + timedelta(days=i % 6, hours=i)
        device = ("desktop", "mobile", None)[i % 3]
        partition = start.strftime("%Y%m%d")
        rows.append((user, "view_item", micros(start), partition, device, None))
        if i % 2 == 0:
            add = start + timedelta(minutes=5)
            rows.append((user, "add_to_cart", micros(add), partition, device, None))
        if i % 4 == 0:
            co = start + timedelta(minutes=10)
            rows.append((user, "begin_checkout", micros(co), partition, device, None))
            buy = start + timedelta(minutes=15)
            rows.append((user, "purchase", micros(buy), partition, device, 10.0 * i))
        later = start + timedelta(days=7)
        rows.append((user, "view_item", micros(later), later.strftime("%Y%m%d"), device, None))
    rows.append((None, "view_item", micros(T0), "20210104", "desktop", None))
    rows.append(("user_00", "scroll", micros(T0), "20210104", "desktop", None))
    return rows


@pytest.fixture
def analysis():
    return AnalysisConfig(
        start_date=date(2021, 1, 1),
        end_date=date(2021, 1, 31),
        funnel_window_days=30,
        cohort_size_threshold=1,
    )


def _collect_all(outputs: PipelineOutputs):
    paths = BatchPaths(root="/tmp/funnelscope")
    return {loc: frame.collect() for loc, frame in outputs.tables(paths).items()}


def test_pipeline_builds_every_table(raw_df, analysis):
    outputs = build_outputs(raw_df(_raw_rows()), analysis)

    assert outputs.events.count() == 12 * 2 + 6 + 3 + 3
    assert outputs.funnel.count() == 12
    assert outputs.users.count() == 12
    assert outputs.cohorts.count() == 12
    assert outputs.retention_weekly.count() > 0
    assert outputs.retention_day_n.count() > 0
    assert validate_outputs(outputs, analysis) == []


def test_pipeline_is_idempotent(raw_df, analysis):
    first = _collect_all(build_outputs(raw_df(_raw_rows()), analysis))
    second = _collect_all(build_outputs(raw_df(_raw_rows()), analysis))

    assert first == second


def test_device_filter_restricts_funnel_and_cohorts(raw_df):
    analysis = AnalysisConfig(cohort_size_threshold=1, device_filter=DeviceCategory.UNKNOWN)

    outputs = build_outputs(raw_df(_raw_rows()), analysis)

    devices = {r["device_category"] for r in outputs.funnel.collect()}
    assert devices == {"unknown"}
    assert {r["device_category"] for r in outputs.cohorts.collect()} == {"unknown"}
    assert {r["device_category"] for r in outputs.retention_day_n.collect()} == {"unknown"}


def test_table_locations():
    paths = BatchPaths(root="s3a://bucket/")

    assert paths.is_object_store
    assert paths.silver_events == "s3a://bucket/silver/events"
    assert paths.gold_retention_day_n == "s3a://bucket/gold/retention_day_n"


def test_rerun_replaces_every_silver_event_partition(spark, raw_df, analysis, tmp_path):
    paths = BatchPaths(root=str(tmp_path))
    rows_written = NoOpMeter("funnelscope-tests").create_counter("rows_written")
    narrow = analysis.model_copy(
        update={"start_date": date(2021, 1, 5), "end_date": date(2021, 1, 5)},
    )

    spark.conf.set("spark.sql.sources.partitionOverwriteMode", "dynamic")
    try:
        _write_outputs(build_outputs(raw_df(_raw_rows()), analysis), paths, "parquet", rows_written)
        _write_outputs(build_outputs(raw_df(_raw_rows()), narrow), paths, "parquet", rows_written)
    finally:
        spark.conf.unset("spark.sql.sources.partitionOverwriteMode")

    written = spark.read.parquet(paths.silver_events)
    dates = {r["event_date"] for r in written.select("event_date").distinct().collect()}
    assert dates == {date(2021, 1, 5)}
