from __future__ import annotations

"""
Silver layer: raw GA4 events → canonical commerce events.

Responsibilities:
- Read the raw event log (GA4 export, flattened or nested).
- Parse the partition key (event_date) and fail the run on malformed keys.
- Restrict to the requested partition date range.
- Map GA4 event names onto the four funnel event types, drop everything else.
- Drop events without a user, coalesce missing devices to 'unknown'.
- Deduplicate exact duplicate rows.
"""

import logging
from datetime import date
from typing import Iterable, List

from pyspark.sql import Column, DataFrame, SparkSession, functions as F, types as T

from libs.config import SourceConfig
from libs.models.events import GA4_EVENT_NAMES, CommerceEvent, DeviceCategory, EventType
from libs.observability import get_logger, get_tracer, stage_span

logger: logging.Logger = get_logger("batch.silver.events")
tracer = get_tracer("funnelscope.batch.silver.events")

CANONICAL_COLUMNS: List[str] = [
    "user_id",
    "event_type",
    "event_timestamp",
    "event_date",
    "device_category",
    "purchase_revenue",
]

PARTITION_DATE_FORMAT = "yyyyMMdd"


class EventSourceError(RuntimeError):
    """Raw event log is unreadable or violates the input contract."""


def canonical_schema() -> T.StructType:
    """
    Canonical Silver schema for commerce events.

    event_timestamp is a Spark TimestampType (microsecond precision).
    """
    return T.StructType(
        [
            T.StructField("user_id", T.StringType(), nullable=False),
            T.StructField("event_type", T.StringType(), nullable=False),
            T.StructField("event_timestamp", T.TimestampType(), nullable=False),
            T.StructField("event_date", T.DateType(), nullable=False),
            T.StructField("device_category", T.StringType(), nullable=False),
            T.StructField("purchase_revenue", T.DoubleType(), nullable=True),
        ],
    )


def events_frame(spark: SparkSession, events: Iterable[CommerceEvent]) -> DataFrame:
    """Build a canonical events DataFrame from typed events."""
    rows = [
        (
            e.user_id,
            e.event_type.value,
            e.event_timestamp,
            e.event_date,
            e.device_category.value,
            e.purchase_revenue,
        )
        for e in events
    ]
    return spark.createDataFrame(rows, schema=canonical_schema())


def read_raw_events(spark: SparkSession, source: SourceConfig) -> DataFrame:
    """
    Read the raw event log described by SourceConfig.

    Any read failure (missing path, unknown format, auth) aborts the run.
    """
    logger.info(
        "Reading raw events.",
        extra={"format": source.format, "path": source.path},
    )
    reader = spark.read.format(source.format).options(**source.options)
    try:
        if source.format == "bigquery":
            return reader.load()
        return reader.load(source.path)
    except Exception as exc:
        raise EventSourceError(
            f"Cannot read raw events from {source.path!r} ({source.format})"
        ) from exc


def _pick(df: DataFrame, *candidates: str) -> str:
    for name in candidates:
        if name in df.columns:
            return name
    raise EventSourceError(
        f"Raw events missing required column; expected one of {list(candidates)}"
    )


def _struct_field(df: DataFrame, flat: str, struct: str, field: str) -> Column:
    """
    Resolve a flattened column or its nested GA4 counterpart, else null.
    """
    dtypes = dict(df.dtypes)
    if flat in dtypes:
        return F.col(flat)
    if dtypes.get(struct, "").startswith("struct") and f"{field}:" in dtypes[struct]:
        return F.col(f"{struct}.{field}")
    return F.lit(None)


def _normalize_ts(df: DataFrame, column: str) -> Column:
    """
    event_timestamp as TimestampType.

    GA4 exports carry microseconds since epoch as an integer.
    """
    dtype = dict(df.dtypes)[column]
    if dtype in ("bigint", "long", "int"):
        return F.timestamp_micros(F.col(column))
    if dtype == "timestamp":
        return F.col(column)
    return F.col(column).cast(T.TimestampType())


def _parse_partition_date(df: DataFrame, column: str) -> Column:
    dtype = dict(df.dtypes)[column]
    if dtype == "date":
        return F.col(column)
    return F.to_date(
        F.try_to_timestamp(F.col(column).cast("string"), F.lit(PARTITION_DATE_FORMAT))
    )


def _canonical_event_type(name: Column) -> Column:
    """
    Raw event name → canonical event type (GA4 names and canonical names).

    Unrecognized names map to null.
    """
    pairs = {raw: et.value for raw, et in GA4_EVENT_NAMES.items()}
    pairs.update({et.value: et.value for et in EventType})

    mapped = None
    for raw_name, canonical in pairs.items():
        cond = name == F.lit(raw_name)
        mapped = (
            F.when(cond, F.lit(canonical))
            if mapped is None
            else mapped.when(cond, F.lit(canonical))
        )
    return mapped


def _device_category(raw: Column) -> Column:
    """Lower-cased device; null and unrecognized values become 'unknown'."""
    lowered = F.lower(F.trim(raw.cast("string")))
    valid = [d.value for d in DeviceCategory]
    return F.when(lowered.isin(valid), lowered).otherwise(
        F.lit(DeviceCategory.UNKNOWN.value)
    )


def _flatten(raw: DataFrame) -> DataFrame:
    """Project raw GA4 columns onto the canonical names (unparsed)."""
    user_col = _pick(raw, "user_pseudo_id", "user_id")
    name_col = _pick(raw, "event_name", "event_type")
    ts_col = _pick(raw, "event_timestamp")
    date_col = _pick(raw, "event_date")

    return raw.select(
        F.col(user_col).cast(T.StringType()).alias("user_id"),
        F.col(name_col).cast(T.StringType()).alias("event_name"),
        _normalize_ts(raw, ts_col).alias("event_timestamp"),
        F.col(date_col).alias("raw_event_date"),
        _parse_partition_date(raw, date_col).alias("event_date"),
        _struct_field(raw, "device_category", "device", "category").alias(
            "device_category",
        ),
        _struct_field(raw, "purchase_revenue", "ecommerce", "purchase_revenue")
        .cast(T.DoubleType())
        .alias("purchase_revenue"),
    )


def _assert_partition_dates(flat: DataFrame) -> None:
    """
    Fail the whole run if any row has a missing or unparseable partition key.
    """
    bad = (
        flat.where(F.col("event_date").isNull())
        .select(F.col("raw_event_date").cast("string").alias("value"))
        .limit(1)
        .collect()
    )
    if bad:
        raise EventSourceError(
            f"Malformed event_date partition key: {bad[0]['value']!r} "
            f"(expected {PARTITION_DATE_FORMAT})"
        )


def normalize_events(raw: DataFrame, start_date: date, end_date: date) -> DataFrame:
    """
    Transform raw events into the canonical event set.

    Output columns follow CANONICAL_COLUMNS, sorted by (user_id, event_timestamp).

    Raises:
        ValueError: start_date is after end_date.
        EventSourceError: required columns are missing or a partition key is
            malformed.
    """
    if start_date > end_date:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")

    with stage_span(
        tracer,
        "normalize_events",
        {"start_date": start_date, "end_date": end_date},
    ):
        flat = _flatten(raw)
        _assert_partition_dates(flat)

        events = (
            flat.where(F.col("event_date").between(F.lit(start_date), F.lit(end_date)))
            .withColumn("event_type", _canonical_event_type(F.col("event_name")))
            .where(F.col("event_type").isNotNull())
            .where(F.col("user_id").isNotNull())
            .where(F.col("event_timestamp").isNotNull())
            .withColumn("device_category", _device_category(F.col("device_category")))
            .select(*CANONICAL_COLUMNS)
            .dropDuplicates(CANONICAL_COLUMNS)
            .orderBy("user_id", "event_timestamp", "event_type")
        )

    logger.info(
        "Normalized events plan built.",
        extra={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
    )
    return events
