from __future__ import annotations

"""
Post-run data-quality checks on the gold tables.

The checks never raise: every finding becomes a ValidationIssue and is logged
as a warning. The aggregation core stays free of assertions.
"""

import logging
from typing import List

from pyspark.sql import DataFrame, functions as F

from apps.batch.gold.funnel import window_end_for
from libs.models.analytics import Severity, ValidationIssue
from libs.observability import get_logger

logger: logging.Logger = get_logger("batch.validation")

STAGE_FLAGS = ("reached_view", "reached_add", "reached_checkout", "reached_purchase")


def check_funnel_monotonic(funnel: DataFrame) -> List[ValidationIssue]:
    """Stage counts must not increase from view to purchase."""
    row = funnel.agg(
        *[F.coalesce(F.sum(F.col(f).cast("long")), F.lit(0)).alias(f) for f in STAGE_FLAGS],
    ).collect()[0]

    issues: List[ValidationIssue] = []
    for prev_flag, flag in zip(STAGE_FLAGS, STAGE_FLAGS[1:]):
        if row[flag] > row[prev_flag]:
            issues.append(
                ValidationIssue(
                    check="funnel_monotonic",
                    severity=Severity.ERROR,
                    detail=f"{flag}={row[flag]} exceeds {prev_flag}={row[prev_flag]}",
                )
            )
    return issues


def check_funnel_ordering(funnel: DataFrame) -> List[ValidationIssue]:
    """Every present stage must strictly postdate its predecessor."""
    issues: List[ValidationIssue] = []
    for prev_col, col in (
        ("view_at", "add_at"),
        ("add_at", "checkout_at"),
        ("checkout_at", "purchase_at"),
    ):
        violations = funnel.where(
            F.col(col).isNotNull()
            & (F.col(prev_col).isNull() | (F.col(col) <= F.col(prev_col)))
        ).count()
        if violations:
            issues.append(
                ValidationIssue(
                    check="funnel_ordering",
                    severity=Severity.ERROR,
                    detail=f"{violations} users with {col} not after {prev_col}",
                )
            )
    return issues


def check_funnel_window(funnel: DataFrame, window_days: int) -> List[ValidationIssue]:
    window_end = window_end_for(window_days)
    issues: List[ValidationIssue] = []
    for col in ("add_at", "checkout_at", "purchase_at"):
        violations = funnel.where(
            F.col(col).isNotNull() & (F.col(col) > window_end)
        ).count()
        if violations:
            issues.append(
                ValidationIssue(
                    check="funnel_window",
                    severity=Severity.ERROR,
                    detail=(
                        f"{violations} users with {col} beyond "
                        f"view_at + {window_days}d"
                    ),
                )
            )
    return issues


def check_week0_identity(weekly: DataFrame) -> List[ValidationIssue]:
    """Week 0 retention must be exactly 100% for every emitted cohort."""
    cohorts = weekly.select("cohort_week", "device_category", "cohort_size").distinct()
    week0 = weekly.where(F.col("week_number") == 0).select(
        "cohort_week",
        "device_category",
        "active_users",
    )
    mismatches = (
        cohorts.join(week0, ["cohort_week", "device_category"], "left")
        .where(
            F.col("active_users").isNull()
            | (F.col("active_users") != F.col("cohort_size"))
        )
        .orderBy("cohort_week", "device_category")
        .collect()
    )
    return [
        ValidationIssue(
            check="weekly_week0_identity",
            detail=(
                f"cohort {row['cohort_week']} / {row['device_category']}: "
                f"week0 active={row['active_users']} size={row['cohort_size']}"
            ),
        )
        for row in mismatches
    ]


def check_retention_bounds(retention: DataFrame, table: str) -> List[ValidationIssue]:
    out_of_bounds = retention.where(
        (F.col("retention_rate") < 0) | (F.col("retention_rate") > 1)
    ).count()
    if not out_of_bounds:
        return []
    return [
        ValidationIssue(
            check="retention_bounds",
            detail=f"{out_of_bounds} rows in {table} outside [0, 1]",
        )
    ]


def run_validations(
    funnel: DataFrame,
    weekly: DataFrame,
    day_n: DataFrame,
    window_days: int,
) -> List[ValidationIssue]:
    """
    Run every check and log each finding as a warning.

    Returns:
        All findings; an empty list means the run looks healthy.
    """
    issues: List[ValidationIssue] = [
        *check_funnel_monotonic(funnel),
        *check_funnel_ordering(funnel),
        *check_funnel_window(funnel, window_days),
        *check_week0_identity(weekly),
        *check_retention_bounds(weekly, "retention_weekly"),
        *check_retention_bounds(day_n, "retention_day_n"),
    ]

    for issue in issues:
        logger.warning(
            "Validation check failed.",
            extra={
                "check": issue.check,
                "severity": issue.severity.value,
                "detail": issue.detail,
            },
        )
    logger.info("Validation finished.", extra={"issues": len(issues)})
    return issues
