# libs/models/analytics.py
"""
Pydantic models for the derived analytics tables.

These mirror the logical schema of:
- gold/funnel (one row per user with a product view)
- gold/cohorts (one row per user, cohort assignment)
- gold/retention_weekly and gold/retention_day_n
- gold/funnel_summary
- validation findings

They are used by:
- the reporting layer reading gold tables back into Python
- tests asserting on collected DataFrames
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field
from pyspark.sql import DataFrame

from libs.models.events import DeviceCategory

RecordT = TypeVar("RecordT", bound=BaseModel)


class UserFunnelRecord(BaseModel):
    """
    Per-user ordered funnel progression.

    A stage timestamp is None when the stage was never reached or failed the
    ordering / window gate.
    """

    user_id: str
    device_category: DeviceCategory
    view_at: datetime
    add_at: Optional[datetime] = None
    checkout_at: Optional[datetime] = None
    purchase_at: Optional[datetime] = None
    reached_view: bool = True
    reached_add: bool = False
    reached_checkout: bool = False
    reached_purchase: bool = False


class CohortRecord(BaseModel):
    user_id: str
    cohort_anchor_date: date
    device_category: DeviceCategory
    cohort_week: date = Field(description="Monday of the anchor week")
    cohort_month: date = Field(description="First day of the anchor month")


class RetentionPoint(BaseModel):
    """
    Retention of one cohort/device group at one offset.

    `cohort_period` is the cohort week (weekly variant) or the cohort month
    (day-offset variant); `offset` is in weeks or days accordingly.
    """

    cohort_period: date
    offset: int
    device_category: DeviceCategory
    cohort_size: int = Field(ge=0)
    active_users: int = Field(ge=0)
    retention_rate: float = Field(ge=0.0)

    model_config: ClassVar[Dict[str, object]] = {
        "json_schema_extra": {
            "example": {
                "cohort_period": "2021-01-04",
                "offset": 1,
                "device_category": "desktop",
                "cohort_size": 1520,
                "active_users": 137,
                "retention_rate": 0.0901,
            }
        }
    }


class FunnelStageSummary(BaseModel):
    """Stage counts and step conversion rates for one device (or `all`)."""

    device_category: str
    total_users: int
    view_users: int
    add_users: int
    checkout_users: int
    purchase_users: int
    view_to_add_rate: float
    add_to_checkout_rate: float
    checkout_to_purchase_rate: float
    overall_conversion_rate: float


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class ValidationIssue(BaseModel):
    check: str
    severity: Severity = Severity.WARNING
    detail: str


def to_records(df: DataFrame, model: Type[RecordT]) -> List[RecordT]:
    """
    Collect a (small) DataFrame into typed records.

    Columns not declared on the model are ignored.
    """
    return [model.model_validate(row.asDict()) for row in df.collect()]


def retention_points(
    df: DataFrame,
    period_col: str,
    offset_col: str,
) -> List[RetentionPoint]:
    """Collect a retention table into RetentionPoint records."""
    points: List[RetentionPoint] = []
    for row in df.collect():
        data = row.asDict()
        points.append(
            RetentionPoint(
                cohort_period=data[period_col],
                offset=data[offset_col],
                device_category=data["device_category"],
                cohort_size=data["cohort_size"],
                active_users=data["active_users"],
                retention_rate=data["retention_rate"],
            )
        )
    return points
