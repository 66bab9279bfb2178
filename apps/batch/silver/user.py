from __future__ import annotations

"""
Silver layer: derive silver_users from canonical events.

Per-user attributes shared by the funnel and cohort builders:
  - device_category (device of the user's earliest qualifying event)
  - first_seen_ts
  - last_seen_ts
  - total_events
"""

import logging
from typing import Optional

from pyspark.sql import DataFrame, Window, functions as F

from libs.models.events import DeviceCategory
from libs.observability import get_logger

logger: logging.Logger = get_logger("batch.silver.users")


def build_silver_users(events: DataFrame) -> DataFrame:
    """
    Build the silver_users table from canonical events.

    Device attribution ties (several events at the earliest instant) resolve
    to the lexicographically smallest device category.

    Output schema:
        user_id: string
        device_category: string
        first_seen_ts: timestamp
        last_seen_ts: timestamp
        total_events: long
    """
    w_first = Window.partitionBy("user_id").orderBy(
        F.col("event_timestamp").asc(),
        F.col("device_category").asc(),
    )
    first_device = (
        events.withColumn("rn", F.row_number().over(w_first))
        .where(F.col("rn") == 1)
        .select("user_id", "device_category")
    )

    activity = (
        events.groupBy("user_id")
        .agg(
            F.min("event_timestamp").alias("first_seen_ts"),
            F.max("event_timestamp").alias("last_seen_ts"),
            F.count("*").alias("total_events"),
        )
        .dropna(subset=["user_id"])
    )

    return (
        activity.join(first_device, "user_id", "inner")
        .select(
            "user_id",
            "device_category",
            "first_seen_ts",
            "last_seen_ts",
            "total_events",
        )
        .orderBy("user_id")
    )


def restrict_to_device(
    users: DataFrame,
    device_filter: Optional[DeviceCategory],
) -> DataFrame:
    """Keep only users attributed to `device_filter` (no-op when None)."""
    if device_filter is None:
        return users
    logger.info(
        "Restricting users to device.",
        extra={"device_category": device_filter.value},
    )
    return users.where(F.col("device_category") == F.lit(device_filter.value))
