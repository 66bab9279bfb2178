"""
Gold layer: user-level ordered funnel from canonical events.

Funnel stages (in order):
  1. PRODUCT_VIEW
  2. ADD_TO_CART
  3. BEGIN_CHECKOUT
  4. PURCHASE

Rules:
  - user grain, first occurrence of each stage
  - each stage must strictly postdate the previous *validated* stage
  - every stage must land within `window_days` of the first view
  - an invalid stage voids every later stage

Also produces the per-device funnel summary with step conversion rates.
"""

from __future__ import annotations

import logging
from typing import Optional

from pyspark.sql import Column, DataFrame, functions as F

from apps.batch.silver.user import build_silver_users, restrict_to_device
from libs.models.events import DeviceCategory, EventType
from libs.observability import get_tracer, stage_span

logger = logging.getLogger(__name__)
tracer = get_tracer("funnelscope.batch.gold.funnel")

DEFAULT_WINDOW_DAYS = 30

# (event type, first-occurrence column, gated output column)
STAGES = (
    (EventType.PRODUCT_VIEW, "t_view", "view_at"),
    (EventType.ADD_TO_CART, "t_add", "add_at"),
    (EventType.BEGIN_CHECKOUT, "t_checkout", "checkout_at"),
    (EventType.PURCHASE, "t_purchase", "purchase_at"),
)

FUNNEL_COLUMNS = [
    "user_id",
    "device_category",
    "view_at",
    "add_at",
    "checkout_at",
    "purchase_at",
    "reached_view",
    "reached_add",
    "reached_checkout",
    "reached_purchase",
]

SUMMARY_ALL_DEVICES = "all"


def _first_stage_timestamps(events: DataFrame) -> DataFrame:
    """
    First timestamp of every stage per user, ignoring order.

    Produces: user_id, t_view, t_add, t_checkout, t_purchase
    """
    return events.groupBy("user_id").agg(
        *[
            F.min(
                F.when(F.col("event_type") == et.value, F.col("event_timestamp")),
            ).alias(raw_col)
            for et, raw_col, _ in STAGES
        ],
    )


def window_end_for(window_days: int) -> Column:
    """Upper bound of the funnel window, anchored at the first view."""
    return F.col("view_at") + F.expr(f"INTERVAL {int(window_days)} DAYS")


def _gate_stages(firsts: DataFrame, window_days: int) -> DataFrame:
    """
    Cascading gate: stage N is kept iff it is strictly after the gated
    stage N-1 and no later than view_at + window. Comparisons against a null
    predecessor are null, so a voided stage voids everything after it.
    """
    gated = firsts.withColumn("view_at", F.col("t_view"))
    window_end = window_end_for(window_days)

    for (_, _, prev_col), (_, raw_col, out_col) in zip(STAGES, STAGES[1:]):
        gated = gated.withColumn(
            out_col,
            F.when(
                (F.col(raw_col) > F.col(prev_col)) & (F.col(raw_col) <= window_end),
                F.col(raw_col),
            ),
        )
    return gated


def build_user_funnel(
    events: DataFrame,
    window_days: int = DEFAULT_WINDOW_DAYS,
    device_filter: Optional[DeviceCategory] = None,
) -> DataFrame:
    """
    One UserFunnelRecord row per user with at least one PRODUCT_VIEW.

    Args:
        events: canonical events (silver).
        window_days: funnel window W, measured from the first view.
        device_filter: optional restriction to one attributed device.

    Returns:
        DataFrame with FUNNEL_COLUMNS, ordered by user_id.
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")

    with stage_span(tracer, "build_user_funnel", {"window_days": window_days}):
        firsts = _first_stage_timestamps(events).where(F.col("t_view").isNotNull())
        gated = _gate_stages(firsts, window_days)

        users = restrict_to_device(build_silver_users(events), device_filter)

        funnel = (
            gated.join(users.select("user_id", "device_category"), "user_id", "inner")
            .withColumn("reached_view", F.col("view_at").isNotNull())
            .withColumn("reached_add", F.col("add_at").isNotNull())
            .withColumn("reached_checkout", F.col("checkout_at").isNotNull())
            .withColumn("reached_purchase", F.col("purchase_at").isNotNull())
            .select(*FUNNEL_COLUMNS)
            .orderBy("user_id")
        )

    logger.info(
        "User funnel plan built.",
        extra={
            "window_days": window_days,
            "device_filter": device_filter.value if device_filter else None,
        },
    )
    return funnel


def _safe_rate(numerator: str, denominator: str) -> Column:
    return F.when(
        F.col(denominator) > 0,
        F.col(numerator) / F.col(denominator),
    ).otherwise(F.lit(0.0))


def _stage_counts(funnel: DataFrame, *group_cols: str) -> DataFrame:
    grouped = funnel.groupBy(*group_cols) if group_cols else funnel.groupBy()
    return grouped.agg(
        F.countDistinct("user_id").alias("total_users"),
        *[
            F.coalesce(F.sum(F.col(flag).cast("long")), F.lit(0)).alias(alias)
            for flag, alias in (
                ("reached_view", "view_users"),
                ("reached_add", "add_users"),
                ("reached_checkout", "checkout_users"),
                ("reached_purchase", "purchase_users"),
            )
        ],
    )


def summarize_funnel(funnel: DataFrame) -> DataFrame:
    """
    Stage counts and conversion rates per device plus an `all` row.

    Produces (FunnelStageSummary):
      device_category, total_users, view_users, add_users, checkout_users,
      purchase_users, view_to_add_rate, add_to_checkout_rate,
      checkout_to_purchase_rate, overall_conversion_rate
    """
    per_device = _stage_counts(funnel, "device_category")
    overall = _stage_counts(funnel).withColumn(
        "device_category",
        F.lit(SUMMARY_ALL_DEVICES),
    )

    counts = per_device.unionByName(overall).where(F.col("total_users") > 0)

    return (
        counts.withColumn("view_to_add_rate", _safe_rate("add_users", "view_users"))
        .withColumn(
            "add_to_checkout_rate",
            _safe_rate("checkout_users", "add_users"),
        )
        .withColumn(
            "checkout_to_purchase_rate",
            _safe_rate("purchase_users", "checkout_users"),
        )
        .withColumn(
            "overall_conversion_rate",
            _safe_rate("purchase_users", "view_users"),
        )
        .select(
            "device_category",
            "total_users",
            "view_users",
            "add_users",
            "checkout_users",
            "purchase_users",
            "view_to_add_rate",
            "add_to_checkout_rate",
            "checkout_to_purchase_rate",
            "overall_conversion_rate",
        )
        .orderBy(F.desc("total_users"), F.asc("device_category"))
    )
