"""
Gold layer: cohort assignment and retention curves.

Cohort definition:
  - anchor = partition date of the user's first PRODUCT_VIEW
  - cohort_week = Monday of the anchor week
  - cohort_month = first day of the anchor month
  - device = attributed device (see silver_users)

Activity definition: >= 1 canonical commerce event (any of the four types).

Variants:
  - weekly: active in cohort_week + n weeks, n in [0, 8]
  - day offset: active on anchor + d days, d in {0, 1, 7, 30}, grouped by
    cohort month and zero-filled
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from pyspark.sql import Column, DataFrame, functions as F

from apps.batch.silver.user import build_silver_users, restrict_to_device
from libs.models.events import DeviceCategory, EventType
from libs.observability import get_tracer, stage_span

logger = logging.getLogger(__name__)
tracer = get_tracer("funnelscope.batch.gold.retention")

DEFAULT_MIN_COHORT_SIZE = 100
MAX_WEEK_OFFSET = 8
DAY_OFFSETS = (0, 1, 7, 30)

WEEKLY_COLUMNS = [
    "cohort_week",
    "week_number",
    "device_category",
    "cohort_size",
    "active_users",
    "retention_rate",
]

DAY_N_COLUMNS = [
    "cohort_month",
    "day_offset",
    "device_category",
    "cohort_size",
    "active_users",
    "retention_rate",
]


def _monday_of(col: Column) -> Column:
    # Spark truncates WEEK to Monday.
    return F.to_date(F.date_trunc("week", col))


def _check_min_cohort_size(min_cohort_size: int) -> None:
    if min_cohort_size < 1:
        raise ValueError(f"min_cohort_size must be >= 1, got {min_cohort_size}")


def assign_cohorts(
    events: DataFrame,
    device_filter: Optional[DeviceCategory] = None,
) -> DataFrame:
    """
    One CohortRecord row per user with at least one PRODUCT_VIEW.

    Produces:
      user_id, cohort_anchor_date, device_category, cohort_week, cohort_month
    """
    anchors = (
        events.where(F.col("event_type") == EventType.PRODUCT_VIEW.value)
        .groupBy("user_id")
        .agg(F.min("event_date").alias("cohort_anchor_date"))
    )
    users = restrict_to_device(build_silver_users(events), device_filter)

    return (
        anchors.join(users.select("user_id", "device_category"), "user_id", "inner")
        .withColumn("cohort_week", _monday_of(F.col("cohort_anchor_date")))
        .withColumn("cohort_month", F.trunc(F.col("cohort_anchor_date"), "month"))
        .select(
            "user_id",
            "cohort_anchor_date",
            "device_category",
            "cohort_week",
            "cohort_month",
        )
        .orderBy("user_id")
    )


def _cohort_sizes(cohorts: DataFrame, period_col: str) -> DataFrame:
    return cohorts.groupBy(period_col, "device_category").agg(
        F.countDistinct("user_id").alias("cohort_size"),
    )


def _rate() -> Column:
    return F.when(
        F.col("cohort_size") > 0,
        F.col("active_users") / F.col("cohort_size"),
    ).otherwise(F.lit(0.0))


def weekly_retention(
    events: DataFrame,
    cohorts: DataFrame,
    min_cohort_size: int = DEFAULT_MIN_COHORT_SIZE,
) -> DataFrame:
    """
    Weekly cohort retention.

    Week numbers are whole-week differences between Monday-aligned weeks.
    Activity outside [0, MAX_WEEK_OFFSET] is dropped; negative offsets
    (partition date earlier than the anchor week) are logged. Only offsets
    with observed activity are emitted.

    Returns:
        DataFrame with WEEKLY_COLUMNS ordered by cohort_week, week_number,
        device_category.
    """
    _check_min_cohort_size(min_cohort_size)

    with stage_span(tracer, "weekly_retention", {"min_cohort_size": min_cohort_size}):
        activity = (
            events.select(
                "user_id",
                _monday_of(F.col("event_date")).alias("activity_week"),
            )
            .distinct()
            .join(cohorts.select("user_id", "cohort_week", "device_category"), "user_id")
            .withColumn(
                "week_number",
                (F.datediff("activity_week", "cohort_week") / F.lit(7)).cast("int"),
            )
        )

        negative = activity.where(F.col("week_number") < 0).count()
        if negative:
            logger.warning(
                "Dropping activity that precedes the cohort week.",
                extra={"rows": negative},
            )

        active = (
            activity.where(F.col("week_number").between(0, MAX_WEEK_OFFSET))
            .groupBy("cohort_week", "week_number", "device_category")
            .agg(F.countDistinct("user_id").alias("active_users"))
        )
        sizes = _cohort_sizes(cohorts, "cohort_week").where(
            F.col("cohort_size") >= min_cohort_size,
        )

        return (
            active.join(sizes, ["cohort_week", "device_category"], "inner")
            .withColumn("retention_rate", _rate())
            .select(*WEEKLY_COLUMNS)
            .orderBy("cohort_week", "week_number", "device_category")
        )


def day_n_retention(
    events: DataFrame,
    cohorts: DataFrame,
    min_cohort_size: int = DEFAULT_MIN_COHORT_SIZE,
    offsets: Sequence[int] = DAY_OFFSETS,
) -> DataFrame:
    """
    Day-N retention per cohort month and device.

    Every (cohort_month, device_category) group that meets the size threshold
    gets one row per offset; offsets without activity report zero.

    Returns:
        DataFrame with DAY_N_COLUMNS ordered by cohort_month, day_offset,
        device_category.
    """
    _check_min_cohort_size(min_cohort_size)
    if not offsets or any(int(o) < 0 for o in offsets):
        raise ValueError(f"offsets must be non-empty and non-negative, got {offsets}")
    offsets = sorted({int(o) for o in offsets})

    with stage_span(tracer, "day_n_retention", {"offsets": offsets}):
        active = (
            events.select("user_id", "event_date")
            .distinct()
            .join(
                cohorts.select(
                    "user_id",
                    "cohort_anchor_date",
                    "cohort_month",
                    "device_category",
                ),
                "user_id",
            )
            .withColumn(
                "day_offset",
                F.datediff("event_date", "cohort_anchor_date"),
            )
            .where(F.col("day_offset").isin(offsets))
            .groupBy("cohort_month", "device_category", "day_offset")
            .agg(F.countDistinct("user_id").alias("active_users"))
        )

        grid = (
            _cohort_sizes(cohorts, "cohort_month")
            .where(F.col("cohort_size") >= min_cohort_size)
            .withColumn(
                "day_offset",
                F.explode(F.array(*[F.lit(o) for o in offsets])),
            )
        )

        return (
            grid.join(
                active,
                ["cohort_month", "device_category", "day_offset"],
                "left",
            )
            .withColumn(
                "active_users",
                F.coalesce(F.col("active_users"), F.lit(0).cast("long")),
            )
            .withColumn("retention_rate", _rate())
            .select(*DAY_N_COLUMNS)
            .orderBy("cohort_month", "day_offset", "device_category")
        )


def pivot_day_n(day_n: DataFrame, offsets: Sequence[int] = DAY_OFFSETS) -> DataFrame:
    """
    One row per (cohort_month, device_category, cohort_size) with a
    d{N}_retention column per offset.
    """
    return (
        day_n.groupBy("cohort_month", "device_category", "cohort_size")
        .agg(
            *[
                F.max(
                    F.when(F.col("day_offset") == o, F.col("retention_rate")),
                ).alias(f"d{o}_retention")
                for o in offsets
            ],
        )
        .orderBy("cohort_month", "device_category")
    )
